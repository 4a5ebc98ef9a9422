"""Google Calendar feed client for the club agenda."""
import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from bs4 import BeautifulSoup

from processor.diagnostics import Diagnostic, DiagnosticKind, LoggingObserver
from processor.models import UNTITLED, FeedStatus, FetchWindow, RawFeedItem

logger = logging.getLogger(__name__)


class GoogleCalendarFeed:
    """Read-only client for the Google Calendar v3 events endpoint."""

    BASE_URL = "https://www.googleapis.com/calendar/v3/calendars/{calendar_id}/events"

    def __init__(
        self,
        api_key: str,
        calendar_id: str,
        timeout: int = 30,
        max_results: int = 100,
        observer=None
    ):
        """
        Initialize the calendar feed client.

        Args:
            api_key: Google API key with Calendar read access
            calendar_id: Public calendar identifier
            timeout: HTTP request timeout in seconds (default: 30)
            max_results: Page size requested from the API (default: 100)
        """
        self.api_key = api_key
        self.calendar_id = calendar_id
        self.timeout = timeout
        self.max_results = max_results
        self.observer = observer or LoggingObserver()

    def fetch_events(self, days_ahead: int = 90, window: Optional[FetchWindow] = None) -> List[RawFeedItem]:
        """
        Fetch events between now and ``days_ahead`` days from now.

        Args:
            days_ahead: Number of days to fetch events for (default: 90)
            window: Explicit range to fetch; overrides ``days_ahead``

        Returns:
            List of RawFeedItem objects, cancelled instances included

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        window = window or FetchWindow.ahead(days_ahead)
        logger.info(
            f"Fetching calendar events from {window.start.isoformat()} to {window.end.isoformat()}"
        )

        params = {
            'key': self.api_key,
            'timeMin': window.start.isoformat(),
            'timeMax': window.end.isoformat(),
            'singleEvents': 'true',
            'orderBy': 'startTime',
            'showDeleted': 'true',
            'maxResults': str(self.max_results),
        }

        items: List[Dict[str, Any]] = []
        page_token = None
        while True:
            if page_token:
                params['pageToken'] = page_token
            payload = self._fetch_page(params)
            items.extend(payload.get('items', []))
            page_token = payload.get('nextPageToken')
            if not page_token:
                break

        events = [self._parse_item(item) for item in items if item.get('id')]

        logger.info(f"Successfully fetched {len(events)} events")
        return events

    def _fetch_page(self, params: Dict[str, str]) -> Dict[str, Any]:
        """
        Fetch one page of events with retry logic.

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        url = self.BASE_URL.format(calendar_id=quote(self.calendar_id, safe=''))
        max_retries = 3
        base_delay = 1  # seconds

        for attempt in range(max_retries):
            try:
                logger.info(f"Fetching calendar page (attempt {attempt + 1}/{max_retries})")
                response = requests.get(url, params=params, timeout=self.timeout)
                response.raise_for_status()
                return response.json()

            except requests.RequestException as e:
                if attempt < max_retries - 1:
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {max_retries} retry attempts failed. Last error: {e}"
                    )
                    raise

    def _parse_item(self, item: Dict[str, Any]) -> RawFeedItem:
        """
        Convert one API item into a RawFeedItem.

        Args:
            item: Event resource from the Calendar API

        Returns:
            RawFeedItem with the feed-native status
        """
        start = item.get('start') or {}
        end = item.get('end') or {}
        return RawFeedItem(
            id=item['id'],
            title=item.get('summary') or UNTITLED,
            description=self._plain_text(item.get('description')),
            start=start.get('dateTime') or start.get('date') or '',
            end=end.get('dateTime') or end.get('date') or '',
            location=item.get('location'),
            status=self._parse_status(item['id'], item.get('status')),
            link=item.get('htmlLink')
        )

    def _parse_status(self, feed_id: str, value: Optional[str]) -> FeedStatus:
        if not value:
            return FeedStatus.CONFIRMED
        try:
            return FeedStatus(value)
        except ValueError:
            self.observer.emit(Diagnostic(
                kind=DiagnosticKind.UNKNOWN_FEED_STATUS,
                message=f"Unknown feed status '{value}', treating as confirmed",
                feed_id=feed_id,
                details={'feed_status': value}
            ))
            return FeedStatus.CONFIRMED

    @staticmethod
    def _plain_text(description: Optional[str]) -> str:
        """Flatten the HTML the Calendar UI stores in descriptions."""
        if not description:
            return ''
        soup = BeautifulSoup(description, 'html.parser')
        for br in soup.find_all('br'):
            br.replace_with('\n')
        return soup.get_text().strip()
