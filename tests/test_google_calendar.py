"""Unit tests for GoogleCalendarFeed."""
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
import responses
from requests.exceptions import HTTPError, RequestException

from feed.google_calendar import GoogleCalendarFeed
from processor.diagnostics import DiagnosticKind
from processor.models import UNTITLED, FeedStatus, FetchWindow

EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/club-agenda/events"


@pytest.fixture
def feed(observer):
    return GoogleCalendarFeed(api_key='test-key', calendar_id='club-agenda', observer=observer)


def calendar_item(feed_id, summary, **overrides):
    item = {
        'id': feed_id,
        'status': 'confirmed',
        'summary': summary,
        'start': {'dateTime': '2024-06-15T19:00:00-03:00'},
        'end': {'dateTime': '2024-06-15T23:00:00-03:00'},
        'htmlLink': f'https://www.google.com/calendar/event?eid={feed_id}',
    }
    item.update(overrides)
    return item


class TestGoogleCalendarFeed:
    """Test cases for GoogleCalendarFeed class."""

    @responses.activate
    def test_fetch_events_success(self, feed):
        responses.add(
            responses.GET,
            EVENTS_URL,
            json={'items': [
                calendar_item('evt-1', 'Pub Taubaté', location='Rua Principal, 100'),
                calendar_item('evt-2', 'Reunião Caveira VP1'),
            ]},
            status=200
        )

        events = feed.fetch_events(days_ahead=30)

        assert len(events) == 2
        assert events[0].id == 'evt-1'
        assert events[0].title == 'Pub Taubaté'
        assert events[0].start == '2024-06-15T19:00:00-03:00'
        assert events[0].end == '2024-06-15T23:00:00-03:00'
        assert events[0].location == 'Rua Principal, 100'
        assert events[0].status is FeedStatus.CONFIRMED
        assert events[0].link == 'https://www.google.com/calendar/event?eid=evt-1'
        assert events[1].title == 'Reunião Caveira VP1'

    @responses.activate
    def test_request_parameters(self, feed):
        responses.add(responses.GET, EVENTS_URL, json={'items': []}, status=200)

        feed.fetch_events()

        request = responses.calls[0].request
        params = request.params
        assert params['key'] == 'test-key'
        assert params['singleEvents'] == 'true'
        assert params['orderBy'] == 'startTime'
        assert params['showDeleted'] == 'true'
        assert params['maxResults'] == '100'
        assert 'timeMin' in params
        assert 'timeMax' in params

    @responses.activate
    def test_calendar_id_is_quoted(self, observer):
        responses.add(
            responses.GET,
            "https://www.googleapis.com/calendar/v3/calendars/club%40group.calendar.google.com/events",
            json={'items': []},
            status=200
        )
        feed = GoogleCalendarFeed('test-key', 'club@group.calendar.google.com', observer=observer)

        assert feed.fetch_events() == []

    @responses.activate
    def test_pagination(self, feed):
        responses.add(
            responses.GET, EVENTS_URL,
            json={'items': [calendar_item('evt-1', 'Pub')], 'nextPageToken': 'page-2'},
            status=200
        )
        responses.add(
            responses.GET, EVENTS_URL,
            json={'items': [calendar_item('evt-2', 'Reunião')]},
            status=200
        )

        events = feed.fetch_events()

        assert [event.id for event in events] == ['evt-1', 'evt-2']
        assert len(responses.calls) == 2
        assert 'pageToken' not in responses.calls[0].request.params
        assert responses.calls[1].request.params['pageToken'] == 'page-2'

    @responses.activate
    def test_cancelled_instances_kept(self, feed):
        responses.add(
            responses.GET, EVENTS_URL,
            json={'items': [{'id': 'evt-9', 'status': 'cancelled'}]},
            status=200
        )

        [event] = feed.fetch_events()

        assert event.status is FeedStatus.CANCELLED
        assert event.title == UNTITLED
        assert event.start == ''

    @responses.activate
    def test_all_day_event(self, feed):
        responses.add(
            responses.GET, EVENTS_URL,
            json={'items': [calendar_item(
                'evt-3', 'Ação Social',
                start={'date': '2024-06-20'},
                end={'date': '2024-06-21'}
            )]},
            status=200
        )

        [event] = feed.fetch_events()

        assert event.start == '2024-06-20'
        assert event.end == '2024-06-21'

    @responses.activate
    def test_missing_summary_uses_placeholder(self, feed):
        item = calendar_item('evt-4', None)
        del item['summary']
        responses.add(responses.GET, EVENTS_URL, json={'items': [item]}, status=200)

        [event] = feed.fetch_events()

        assert event.title == UNTITLED

    @responses.activate
    def test_items_without_id_skipped(self, feed):
        responses.add(
            responses.GET, EVENTS_URL,
            json={'items': [{'summary': 'Sem id'}, calendar_item('evt-5', 'Pub')]},
            status=200
        )

        events = feed.fetch_events()

        assert [event.id for event in events] == ['evt-5']

    @responses.activate
    def test_html_description_flattened(self, feed):
        responses.add(
            responses.GET, EVENTS_URL,
            json={'items': [calendar_item(
                'evt-6', 'Pub',
                description='<b>Traga</b> um amigo<br>Saída às <a href="#">19h</a>'
            )]},
            status=200
        )

        [event] = feed.fetch_events()

        assert event.description == 'Traga um amigo\nSaída às 19h'

    @responses.activate
    def test_unknown_status_treated_as_confirmed(self, feed, observer):
        responses.add(
            responses.GET, EVENTS_URL,
            json={'items': [calendar_item('evt-7', 'Pub', status='postponed')]},
            status=200
        )

        [event] = feed.fetch_events()

        assert event.status is FeedStatus.CONFIRMED
        assert observer.kinds() == [DiagnosticKind.UNKNOWN_FEED_STATUS]
        assert observer.diagnostics[0].details == {'feed_status': 'postponed'}

    @responses.activate
    @patch('feed.google_calendar.time.sleep')
    def test_retry_then_success(self, mock_sleep, feed):
        responses.add(responses.GET, EVENTS_URL, status=503)
        responses.add(responses.GET, EVENTS_URL, json={'items': [calendar_item('evt-1', 'Pub')]}, status=200)

        events = feed.fetch_events()

        assert len(events) == 1
        assert len(responses.calls) == 2
        mock_sleep.assert_called_once_with(1)

    @responses.activate
    @patch('feed.google_calendar.time.sleep')
    def test_all_retries_fail(self, mock_sleep, feed):
        responses.add(responses.GET, EVENTS_URL, status=500)

        with pytest.raises(HTTPError):
            feed.fetch_events()

        assert len(responses.calls) == 3
        assert [call.args[0] for call in mock_sleep.call_args_list] == [1, 2]

    @responses.activate
    @patch('feed.google_calendar.time.sleep')
    def test_connection_error(self, mock_sleep, feed):
        responses.add(responses.GET, EVENTS_URL, body=RequestException("Connection refused"))

        with pytest.raises(RequestException):
            feed.fetch_events()

    @responses.activate
    def test_explicit_window(self, feed):
        responses.add(responses.GET, EVENTS_URL, json={'items': []}, status=200)
        window = FetchWindow.ahead(30, now=datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))

        feed.fetch_events(window=window)

        params = responses.calls[0].request.params
        assert params['timeMin'] == '2024-06-01T12:00:00+00:00'
        assert params['timeMax'] == '2024-07-01T12:00:00+00:00'
