"""Structured diagnostics emitted by the classification and sync pipeline."""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class DiagnosticKind(str, Enum):
    UNIT_UNRESOLVED = 'unit_unresolved'
    UNKNOWN_FEED_STATUS = 'unknown_feed_status'
    WRITE_FAILED = 'write_failed'
    RESURRECTION_IGNORED = 'resurrection_ignored'


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal observation about one event."""
    kind: DiagnosticKind
    message: str
    feed_id: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class LoggingObserver:
    """Default observer: routes diagnostics to the standard logger."""

    _WARNING_KINDS = {DiagnosticKind.WRITE_FAILED, DiagnosticKind.RESURRECTION_IGNORED}

    def emit(self, diagnostic: Diagnostic) -> None:
        level = logging.WARNING if diagnostic.kind in self._WARNING_KINDS else logging.INFO
        logger.log(
            level,
            diagnostic.message,
            extra={
                'diagnostic': diagnostic.kind.value,
                'feed_id': diagnostic.feed_id,
                **diagnostic.details
            }
        )
