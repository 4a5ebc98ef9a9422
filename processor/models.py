"""Data models for calendar event classification and sync."""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from processor.text_normalizer import normalize_unit_name

NO_UNIT = 'no-unit'
COMMAND_UNIT = 'Comando'
COMMAND_CODE = 'CMD'
REGION_UNIT = 'Regional'
UNTITLED = 'Sem título'


class FeedStatus(str, Enum):
    """Lifecycle status reported by the calendar feed."""
    CONFIRMED = 'confirmed'
    TENTATIVE = 'tentative'
    CANCELLED = 'cancelled'


class PersistedStatus(str, Enum):
    """Lifecycle status of a stored event record. Only moves forward."""
    ACTIVE = 'active'
    CANCELLED = 'cancelled'
    REMOVED = 'removed'

    @property
    def is_terminal(self) -> bool:
        return self is not PersistedStatus.ACTIVE

    def can_transition_to(self, target: 'PersistedStatus') -> bool:
        return self is PersistedStatus.ACTIVE and target.is_terminal


class EventCategory(str, Enum):
    """Event categories recognised in calendar titles."""
    RESTRICTED = 'restricted'
    PUBLIC_EVENT = 'public_event'
    SOCIAL_ACTION = 'social_action'
    SHORT_TRIP = 'short_trip'
    MEETING = 'meeting'
    INSANE_CONVOY = 'insane_convoy'
    OTHER = 'other'

    @property
    def label(self) -> str:
        return _CATEGORY_LABELS[self]


_CATEGORY_LABELS = {
    EventCategory.RESTRICTED: 'Caveira',
    EventCategory.PUBLIC_EVENT: 'Pub',
    EventCategory.SOCIAL_ACTION: 'Ação Social',
    EventCategory.SHORT_TRIP: 'Bate e Volta',
    EventCategory.MEETING: 'Reunião',
    EventCategory.INSANE_CONVOY: 'Bonde Insano',
    EventCategory.OTHER: 'Outros',
}


@dataclass(frozen=True)
class RawFeedItem:
    """Raw event from the calendar feed."""
    id: str
    title: str
    start: str
    end: str
    status: FeedStatus = FeedStatus.CONFIRMED
    description: str = ''
    location: Optional[str] = None
    link: Optional[str] = None


@dataclass(frozen=True)
class OrganizationalUnit:
    """Reference unit (division) with its parent region."""
    id: str
    name: str
    region_id: Optional[str] = None
    region_code: Optional[str] = None
    normalized_name: str = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'normalized_name', normalize_unit_name(self.name))


@dataclass(frozen=True)
class UnitMatch:
    """Outcome of resolving a unit fragment against the reference set."""
    unit_id: Optional[str] = None
    region_code: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.unit_id is not None


@dataclass(frozen=True)
class EventClassification:
    """Structured attributes parsed from an event title."""
    category: EventCategory
    unit_fragment: str = NO_UNIT
    sub_category: Optional[str] = None
    remainder: Optional[str] = None
    is_command_level: bool = False
    is_region_level: bool = False
    is_restricted: bool = False
    region_code: Optional[str] = None


@dataclass(frozen=True)
class ResolvedEvent:
    """Canonical event produced from a feed item on every fetch cycle."""
    feed_id: str
    title: str
    original_title: str
    classification: EventClassification
    status: FeedStatus
    start: str
    end: str
    unit_id: Optional[str] = None
    location: Optional[str] = None
    link: Optional[str] = None
    description: str = ''

    @property
    def category(self) -> EventCategory:
        return self.classification.category

    def to_dict(self) -> Dict[str, Any]:
        c = self.classification
        return {
            'id': self.feed_id,
            'title': self.title,
            'original_title': self.original_title,
            'status': self.status.value,
            'start': self.start,
            'end': self.end,
            'location': self.location,
            'link': self.link,
            'description': self.description,
            'unit_id': self.unit_id,
            'classification': {
                'category': c.category.value,
                'category_label': c.category.label,
                'sub_category': c.sub_category,
                'unit': c.unit_fragment,
                'remainder': c.remainder,
                'region_code': c.region_code,
            },
            'is_command_level': c.is_command_level,
            'is_region_level': c.is_region_level,
            'is_restricted': c.is_restricted,
        }


@dataclass
class PersistedEventRecord:
    """Stored projection of an event, keyed by feed id."""
    feed_id: str
    title: str
    start: str
    category: EventCategory
    unit_id: Optional[str] = None
    status: PersistedStatus = PersistedStatus.ACTIVE
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    @classmethod
    def from_event(cls, event: ResolvedEvent) -> 'PersistedEventRecord':
        return cls(
            feed_id=event.feed_id,
            title=event.title,
            start=event.start,
            category=event.category,
            unit_id=event.unit_id
        )


@dataclass
class SyncResult:
    """Result of a sync operation."""
    created: int = 0
    updated: int = 0
    cancelled: int = 0
    removed: int = 0
    unchanged: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def writes(self) -> int:
        return self.created + self.updated + self.cancelled + self.removed


def parse_start(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a feed start value into an aware datetime.

    Date-only values (all-day events) are midnight UTC of that day.

    Returns:
        datetime or None if the value is empty or malformed
    """
    if not value:
        return None
    try:
        if len(value) == 10:
            return datetime.combine(date.fromisoformat(value), datetime.min.time(), tzinfo=timezone.utc)
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class FetchWindow:
    """Time range requested from the feed; only records starting inside it can be judged missing."""
    start: datetime
    end: datetime

    @classmethod
    def ahead(cls, days: int, now: Optional[datetime] = None) -> 'FetchWindow':
        now = now or datetime.now(timezone.utc)
        return cls(start=now, end=now + timedelta(days=days))

    def contains(self, start: Optional[str]) -> bool:
        """
        Whether a record starting at ``start`` falls inside the window.

        All-day dates compare by day. Unparseable starts count as inside.
        """
        parsed = parse_start(start)
        if parsed is None:
            return True
        if len(start) == 10:
            return self.start.date() <= parsed.date() <= self.end.date()
        return self.start <= parsed < self.end
