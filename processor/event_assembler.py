"""Assembles classified feed items into canonical events."""
import logging
from typing import List, Optional

from processor.diagnostics import Diagnostic, DiagnosticKind, LoggingObserver
from processor.models import (
    COMMAND_CODE,
    COMMAND_UNIT,
    NO_UNIT,
    REGION_UNIT,
    UNTITLED,
    EventClassification,
    FeedStatus,
    RawFeedItem,
    ResolvedEvent,
    UnitMatch,
)
from processor.title_classifier import TitleClassifier
from processor.unit_matcher import UnitMatcher

logger = logging.getLogger(__name__)

TITLE_SEPARATOR = ' - '


class EventAssembler:
    """Builds canonical titles and resolved events from raw feed items."""

    def __init__(self, classifier: TitleClassifier, matcher: UnitMatcher, observer=None):
        self.classifier = classifier
        self.matcher = matcher
        self.observer = observer or LoggingObserver()

    def process_events(self, raw_items: List[RawFeedItem]) -> List[ResolvedEvent]:
        """
        Classify, resolve and assemble a batch of feed items.

        Args:
            raw_items: Items from the calendar feed

        Returns:
            One ResolvedEvent per feed item, in feed order
        """
        events = []
        unresolved = 0

        for item in raw_items:
            classification = self.classifier.classify(item.title)
            unit_match = self.resolve_unit(classification)
            if unit_match.unit_id is None and classification.unit_fragment not in (NO_UNIT, COMMAND_UNIT):
                unresolved += 1
                self.observer.emit(Diagnostic(
                    kind=DiagnosticKind.UNIT_UNRESOLVED,
                    message=f"No unit found for '{classification.unit_fragment}' in '{item.title}'",
                    feed_id=item.id,
                    details={'unit_fragment': classification.unit_fragment}
                ))
            events.append(self.assemble(item, classification, unit_match))

        logger.info(
            f"Assembled {len(events)} events ({unresolved} without a resolved unit)"
        )
        return events

    def resolve_unit(self, classification: EventClassification) -> UnitMatch:
        """Resolve the classification's unit fragment; command events have no unit."""
        fragment = classification.unit_fragment
        if fragment == COMMAND_UNIT:
            return UnitMatch()
        if classification.is_restricted and fragment != NO_UNIT:
            fragment = f'{REGION_UNIT} {fragment}'
        return self.matcher.resolve(fragment)

    def assemble(
        self,
        raw_item: RawFeedItem,
        classification: EventClassification,
        unit_match: UnitMatch
    ) -> ResolvedEvent:
        """
        Build the canonical event for a feed item.

        Args:
            raw_item: Item from the calendar feed
            classification: Output of TitleClassifier.classify
            unit_match: Output of UnitMatcher.resolve

        Returns:
            ResolvedEvent with the canonical title
        """
        return ResolvedEvent(
            feed_id=raw_item.id,
            title=build_canonical_title(classification, unit_match),
            original_title=raw_item.title,
            classification=classification,
            status=raw_item.status,
            start=raw_item.start,
            end=raw_item.end,
            unit_id=unit_match.unit_id,
            location=raw_item.location,
            link=raw_item.link,
            description=raw_item.description
        )


def build_canonical_title(classification: EventClassification, unit_match: UnitMatch) -> str:
    """
    Join category, unit and remainder and prefix the region code.

    Classifying the returned title again yields the same title.
    """
    label = classification.category.label
    if classification.sub_category:
        label = f'{label} ({classification.sub_category})'

    parts = [label]
    if classification.unit_fragment != NO_UNIT:
        parts.append(classification.unit_fragment)
    if classification.remainder:
        parts.append(classification.remainder)
    title = TITLE_SEPARATOR.join(parts)

    region_code = _prefix_code(classification, unit_match)
    if region_code:
        title = f'[{region_code}] {title}'
    return title


def _prefix_code(classification: EventClassification, unit_match: UnitMatch) -> Optional[str]:
    if classification.is_restricted and classification.region_code:
        return classification.region_code
    if classification.is_command_level:
        return COMMAND_CODE
    return unit_match.region_code


def filter_displayable(events: List[ResolvedEvent]) -> List[ResolvedEvent]:
    """Drop events cancelled in the feed and events without a real title."""
    return [
        event for event in events
        if event.status is not FeedStatus.CANCELLED
        and event.original_title.strip()
        and event.original_title.strip() != UNTITLED
    ]
