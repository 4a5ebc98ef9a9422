"""Shared fixtures for the agenda sync tests."""
import os
from unittest.mock import patch

import pytest

from processor.event_assembler import EventAssembler
from processor.models import OrganizationalUnit, RawFeedItem
from processor.title_classifier import TitleClassifier
from processor.unit_matcher import UnitCache, UnitMatcher


class RecordingObserver:
    """Observer that keeps every diagnostic it receives."""

    def __init__(self):
        self.diagnostics = []

    def emit(self, diagnostic):
        self.diagnostics.append(diagnostic)

    def kinds(self):
        return [diagnostic.kind for diagnostic in self.diagnostics]


@pytest.fixture
def aws_credentials():
    """Fake AWS credentials for moto."""
    env_vars = {
        'AWS_ACCESS_KEY_ID': 'testing',
        'AWS_SECRET_ACCESS_KEY': 'testing',
        'AWS_SECURITY_TOKEN': 'testing',
        'AWS_SESSION_TOKEN': 'testing',
        'AWS_DEFAULT_REGION': 'us-east-1'
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


@pytest.fixture
def reference_units():
    """Reference units for two regions of the Vale do Paraíba."""
    return [
        OrganizationalUnit('u-jac-norte', 'Divisão Jacareí Norte - SP', 'r-vp1', 'VP1'),
        OrganizationalUnit('u-jac-centro', 'Divisão Jacareí Centro - SP', 'r-vp1', 'VP1'),
        OrganizationalUnit('u-jac', 'Divisão Jacareí - SP', 'r-vp1', 'VP1'),
        OrganizationalUnit('u-sjc-ext-sul', 'Divisão São José dos Campos Extremo Sul - SP', 'r-vp1', 'VP1'),
        OrganizationalUnit('u-sjc-leste', 'Divisão São José dos Campos Leste - SP', 'r-vp1', 'VP1'),
        OrganizationalUnit('u-tbt', 'Divisão Taubaté - SP', 'r-vp2', 'VP2'),
        OrganizationalUnit('u-reg-vp1', 'Regional Vale do Paraíba I - SP', 'r-vp1', 'VP1'),
        OrganizationalUnit('u-reg-vp2', 'Regional Vale do Paraíba II - SP', 'r-vp2', 'VP2'),
    ]


@pytest.fixture
def unit_cache(reference_units):
    return UnitCache(lambda: list(reference_units))


@pytest.fixture
def matcher(unit_cache):
    return UnitMatcher(unit_cache)


@pytest.fixture
def classifier():
    return TitleClassifier()


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def assembler(classifier, matcher, observer):
    return EventAssembler(classifier, matcher, observer=observer)


@pytest.fixture
def make_item():
    """Factory for raw feed items."""
    def _make(feed_id, title, **overrides):
        values = {
            'id': feed_id,
            'title': title,
            'start': '2024-06-15T19:00:00-03:00',
            'end': '2024-06-15T23:00:00-03:00',
        }
        values.update(overrides)
        return RawFeedItem(**values)
    return _make
