"""AWS Lambda handler for the agenda calendar sync."""
import json
import logging
import os
import time
from typing import Any, Dict, Optional

from feed.google_calendar import GoogleCalendarFeed
from processor.event_assembler import EventAssembler, filter_displayable
from processor.models import FetchWindow
from processor.title_classifier import TitleClassifier
from processor.unit_matcher import UnitCache, UnitMatcher
from storage.event_store import DynamoDBEventStore
from storage.reconciler import EventReconciler
from storage.unit_repository import DynamoDBUnitRepository

# Reference units stay cached for the lifetime of a warm container.
_unit_cache: Optional[UnitCache] = None


# Attributes every LogRecord carries; anything else came in through `extra`.
_RECORD_ATTRIBUTES = set(vars(logging.makeLogRecord({}))) | {'message', 'asctime'}


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRIBUTES and key not in log_data and value is not None:
                log_data[key] = value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def get_unit_cache(table_name: str) -> UnitCache:
    """Return the container-wide unit cache, creating it on first use."""
    global _unit_cache
    if _unit_cache is None:
        _unit_cache = UnitCache(DynamoDBUnitRepository(table_name).load_units)
    return _unit_cache


def _error_response(message: str, error: Exception, start_time: float, **extra) -> Dict[str, Any]:
    return {
        'statusCode': 500,
        'body': json.dumps({
            'message': message,
            'error': str(error),
            'error_type': type(error).__name__,
            **extra,
            'duration_seconds': round(time.time() - start_time, 2)
        })
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Run one fetch, classify, reconcile cycle.

    Cycles must not overlap; the function is deployed with a reserved
    concurrency of one.

    Args:
        event: EventBridge event payload
        context: Lambda context object

    Returns:
        Response dict with statusCode, summary statistics and displayable events
    """
    events_table = os.environ.get('EVENTS_TABLE_NAME', 'agenda-events')
    units_table = os.environ.get('UNITS_TABLE_NAME', 'agenda-units')
    api_key = os.environ.get('GOOGLE_CALENDAR_API_KEY')
    calendar_id = os.environ.get('CALENDAR_ID')
    log_level = os.environ.get('LOG_LEVEL', 'INFO')
    days_ahead = int(os.environ.get('DAYS_AHEAD', '90'))
    timeout_seconds = int(os.environ.get('TIMEOUT_SECONDS', '30'))
    max_results = int(os.environ.get('MAX_RESULTS', '100'))

    setup_logging(log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    logger.info(
        "Lambda execution started",
        extra={
            'events_table': events_table,
            'units_table': units_table,
            'days_ahead': days_ahead
        }
    )

    try:
        if not api_key or not calendar_id:
            raise ValueError("GOOGLE_CALENDAR_API_KEY and CALENDAR_ID must be configured")

        feed = GoogleCalendarFeed(
            api_key=api_key,
            calendar_id=calendar_id,
            timeout=timeout_seconds,
            max_results=max_results
        )
        unit_cache = get_unit_cache(units_table)
        assembler = EventAssembler(TitleClassifier(), UnitMatcher(unit_cache))
        reconciler = EventReconciler(DynamoDBEventStore(events_table))

        try:
            logger.info("Fetching events from calendar")
            window = FetchWindow.ahead(days_ahead)
            raw_items = feed.fetch_events(window=window)
            logger.info(f"Fetched {len(raw_items)} raw events from calendar")
        except Exception as e:
            logger.error(
                f"Failed to fetch events from calendar after retries: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return _error_response('Failed to fetch calendar events', e, start_time)

        try:
            unit_cache.get()
        except Exception as e:
            logger.error(
                f"Failed to load reference units: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return _error_response(
                'Failed to load reference units', e, start_time,
                note='Previous events remain in DynamoDB'
            )

        logger.info("Classifying and assembling events")
        resolved = assembler.process_events(raw_items)
        displayable = filter_displayable(resolved)

        try:
            logger.info("Reconciling events with DynamoDB")
            sync_result = reconciler.sync(resolved, window=window)
        except Exception as e:
            logger.error(
                f"Error during DynamoDB sync operation: {str(e)}",
                extra={'error_type': type(e).__name__},
                exc_info=True
            )
            return _error_response(
                'Failed to sync events with DynamoDB', e, start_time,
                note='Previous events remain in DynamoDB'
            )

        duration = time.time() - start_time
        statistics = {
            'raw_events_fetched': len(raw_items),
            'events_displayable': len(displayable),
            'events_created': sync_result.created,
            'events_updated': sync_result.updated,
            'events_cancelled': sync_result.cancelled,
            'events_removed': sync_result.removed,
            'duration_seconds': round(duration, 2)
        }

        logger.info(
            "Lambda execution completed successfully",
            extra={**statistics, 'errors': sync_result.errors}
        )

        return {
            'statusCode': 200,
            'body': json.dumps({
                'message': 'Sync completed successfully',
                'statistics': statistics,
                'errors': sync_result.errors,
                'events': [item.to_dict() for item in displayable]
            })
        }

    except Exception as e:
        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'duration_seconds': round(time.time() - start_time, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return _error_response('Sync failed', e, start_time)
