"""Rule-ordered classifier for calendar event titles."""
import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Tuple

from processor.models import (
    COMMAND_CODE,
    COMMAND_UNIT,
    NO_UNIT,
    REGION_UNIT,
    EventCategory,
    EventClassification,
)
from processor.text_normalizer import fold_with_offsets, normalize
from processor.unit_matcher import REGION_NAMES

logger = logging.getLogger(__name__)

FUNDRAISING = 'Arrecadação'
EQUIPMENT_DISTRIBUTION = 'Entrega de Coletes'
DEFAULT_LOCALITY = 'São José dos Campos'

_BRACKET_PREFIX = re.compile(r'^\s*\[[^\]]*\]\s*')
_EDGE_SEPARATORS = ' \t-|:;,/'

_COMMAND_TOKEN = re.compile(r'\b(?:cmd|comando)\b')
_REGION_WORD = re.compile(r'\bregional\b')
_RESTRICTED = re.compile(r'\bcaveiras?\b', re.IGNORECASE)
_RESTRICTED_WORD = re.compile(r'\bcaveiras?\b')
_EQUIPMENT = re.compile(r'\bcoletes?\b')

_REGION_CODES = '|'.join(sorted(REGION_NAMES, key=len, reverse=True))
_REGION_CODE_TOKEN = re.compile(r'\b(' + _REGION_CODES + r')\b', re.IGNORECASE)
_ROMAN_SUFFIX = re.compile(r'\b(?:vale do paraiba|vp)\s+(iii|ii|i)\b')
_NAMED_LOCALITY = re.compile(r'\blitoral norte\b')

_SUB_LABELS = '|'.join(re.escape(normalize(label)) for label in (FUNDRAISING, EQUIPMENT_DISTRIBUTION))
_SUB_HEADER = r'(?:\s*\((?:' + _SUB_LABELS + r')(?:\s*/\s*(?:' + _SUB_LABELS + r'))*\))?'


@dataclass(frozen=True)
class CategoryRule:
    """A keyword predicate paired with the category it yields."""
    category: EventCategory
    pattern: Pattern
    sub_pattern: Optional[Pattern] = None
    sub_category: Optional[str] = None
    requires_restricted: bool = False

    def matches(self, folded: str, is_restricted: bool) -> bool:
        if self.requires_restricted:
            return is_restricted
        return self.pattern.search(folded) is not None


# Evaluated in order, first match wins. Short trip precedes meeting.
CATEGORY_RULES = (
    CategoryRule(EventCategory.RESTRICTED, _RESTRICTED_WORD, requires_restricted=True),
    CategoryRule(EventCategory.PUBLIC_EVENT, re.compile(r'\bpub\b')),
    CategoryRule(
        EventCategory.SOCIAL_ACTION,
        re.compile(r'\bacao social\b|\barrecadac(?:ao|oes)\b'),
        sub_pattern=re.compile(r'\barrecadac(?:ao|oes)\b'),
        sub_category=FUNDRAISING
    ),
    CategoryRule(EventCategory.SHORT_TRIP, re.compile(r'\bbate[\s-]*(?:e[\s-]+)?volta\b')),
    CategoryRule(
        EventCategory.MEETING,
        re.compile(r'\breuni(?:ao|oes|o)\b|\breuni\?o\b|\bbate[\s-]*papo\b')
    ),
    CategoryRule(EventCategory.INSANE_CONVOY, re.compile(r'\b(?:bonde|comboio)\s+insano\b')),
)

_HEADERS = {
    category: re.compile(r'^\s*' + re.escape(normalize(category.label)) + r'\b' + _SUB_HEADER)
    for category in EventCategory
}


@dataclass(frozen=True)
class LocalityRule:
    """Canonical unit name emitted when every pattern is found in the title."""
    name: str
    patterns: Tuple[Pattern, ...]

    def search(self, folded: str) -> Optional[int]:
        end = 0
        for pattern in self.patterns:
            match = pattern.search(folded)
            if match is None:
                return None
            end = max(end, match.end())
        return end


_LOCALITIES = (
    ('Jacareí', re.compile(r'\b(?:jacarei|divjac|jac)\b')),
    ('Taubaté', re.compile(r'\b(?:taubate|tbt)\b')),
    (DEFAULT_LOCALITY, re.compile(r'\b(?:sao jose dos campos|sao jose|sjc|divleste)\b')),
)
_DIRECTIONS = (
    ('Norte', re.compile(r'\bnorte\b')),
    ('Sul', re.compile(r'\bsul\b')),
    ('Leste', re.compile(r'\b(?:div)?leste\b')),
    ('Oeste', re.compile(r'\boeste\b')),
    ('Centro', re.compile(r'\b(?:centro|central)\b')),
)
_EXTREME_DIRECTIONS = tuple(
    (name, re.compile(r'\b(?:ext|extr|extremo)\.?\s*' + name.lower() + r'\b'))
    for name in ('Norte', 'Sul', 'Leste', 'Oeste')
)


def _build_locality_rules() -> List[LocalityRule]:
    rules = []
    # Extreme directions first; without a locality they belong to the default one.
    for direction, extreme in _EXTREME_DIRECTIONS:
        for locality, pattern in _LOCALITIES:
            if locality != DEFAULT_LOCALITY:
                rules.append(LocalityRule(f'{locality} Extremo {direction}', (pattern, extreme)))
        rules.append(LocalityRule(f'{DEFAULT_LOCALITY} Extremo {direction}', (extreme,)))
    for direction, direction_pattern in _DIRECTIONS:
        for locality, pattern in _LOCALITIES:
            rules.append(LocalityRule(f'{locality} {direction}', (pattern, direction_pattern)))
    for locality, pattern in _LOCALITIES:
        rules.append(LocalityRule(locality, (pattern,)))
    return rules


LOCALITY_RULES = tuple(_build_locality_rules())


def strip_region_prefix(title: str) -> str:
    """Drop a leading ``[CODE]`` prefix added by a previous canonicalization."""
    return _BRACKET_PREFIX.sub('', title or '', count=1)


def detect_locality_unit(folded: str) -> Optional[Tuple[str, int]]:
    """
    Find the unit named by locality and direction keywords.

    Args:
        folded: Lower-case, accent-free title

    Returns:
        Tuple of (canonical unit name, end offset of the last matched
        keyword in ``folded``) or None
    """
    for rule in LOCALITY_RULES:
        end = rule.search(folded)
        if end is not None:
            return rule.name, end
    return None


def detect_region_code(folded: str) -> Optional[str]:
    """Detect a region code from a literal code, a Roman-numeral suffix or a named locality."""
    match = _REGION_CODE_TOKEN.search(folded)
    if match:
        return match.group(1).upper()
    match = _ROMAN_SUFFIX.search(folded)
    if match:
        return f'VP{len(match.group(1))}'
    if _NAMED_LOCALITY.search(folded):
        return 'LN'
    return None


class _Title:
    """A title with its folded form; tracks the characters cut from the original."""

    def __init__(self, text: str):
        self.text = text
        self.folded, self._offsets = fold_with_offsets(text)
        self._keep = [True] * len(text)

    def original_end(self, folded_end: int) -> int:
        return self._offsets[folded_end - 1] + 1 if folded_end else 0

    def cut(self, pattern: Pattern, count: int = 0) -> bool:
        cut = 0
        for match in pattern.finditer(self.folded):
            if match.end() == match.start():
                continue
            start = self._offsets[match.start()]
            end = self.original_end(match.end())
            if not all(self._keep[start:end]):
                continue
            for index in range(start, end):
                self._keep[index] = False
            cut += 1
            if count and cut >= count:
                break
        return cut > 0

    def rest(self) -> str:
        return ''.join(char for char, keep in zip(self.text, self._keep) if keep)


def _clean(text: str) -> Optional[str]:
    text = re.sub(r'\(\s*\)', ' ', text)
    text = re.sub(r'\s+', ' ', text)
    text = re.sub(r'(?:\s*-\s*){2,}', ' - ', text)
    previous = None
    while text != previous:
        previous = text
        text = text.strip(_EDGE_SEPARATORS)
        if text.startswith('(') and text.endswith(')') and text.count('(') == 1 and text.count(')') == 1:
            text = text[1:-1]
    return text or None


class TitleClassifier:
    """Classifies free-text calendar titles into structured attributes."""

    def __init__(self, rules=CATEGORY_RULES):
        self.rules = tuple(rules)

    def classify(self, raw_title: str) -> EventClassification:
        """
        Classify an event title.

        Never raises: unrecognised titles fall back to category OTHER
        with no unit.

        Args:
            raw_title: Title as received from the feed

        Returns:
            EventClassification for the title
        """
        title = strip_region_prefix(raw_title).strip()
        parsed = _Title(title)
        folded = parsed.folded

        is_command = _COMMAND_TOKEN.search(folded) is not None
        is_region = 'REGIONAL' in folded.upper()
        is_restricted = _RESTRICTED.search(title) is not None

        rule = self._match_rule(folded, is_restricted)
        category = rule.category if rule else EventCategory.OTHER

        sub_categories = []
        if rule and rule.sub_pattern is not None and rule.sub_pattern.search(folded):
            sub_categories.append(rule.sub_category)
        if _EQUIPMENT.search(folded):
            sub_categories.append(EQUIPMENT_DISTRIBUTION)

        if is_restricted:
            fragment, region_code, remainder = self._restricted_branch(parsed, category, rule)
        elif is_command:
            fragment, region_code, remainder = self._command_branch(parsed, category, rule)
        elif is_region:
            fragment, region_code, remainder = self._region_branch(parsed, category, rule)
        else:
            fragment, region_code, remainder = self._default_branch(parsed, category, rule)

        logger.debug(
            f"Classified '{title}' as {category.value} (unit fragment: {fragment})"
        )
        return EventClassification(
            category=category,
            unit_fragment=fragment,
            sub_category=' / '.join(sub_categories) or None,
            remainder=remainder,
            is_command_level=is_command,
            is_region_level=is_region,
            is_restricted=is_restricted,
            region_code=region_code
        )

    def _match_rule(self, folded: str, is_restricted: bool) -> Optional[CategoryRule]:
        for rule in self.rules:
            if rule.matches(folded, is_restricted):
                return rule
        return None

    def _strip_category(self, parsed: _Title, category: EventCategory, rule: Optional[CategoryRule]) -> None:
        if not parsed.cut(_HEADERS[category], count=1) and rule is not None:
            parsed.cut(rule.pattern, count=1)

    def _restricted_branch(self, parsed, category, rule):
        match = _REGION_CODE_TOKEN.search(parsed.text)
        region_code = match.group(1).upper() if match else None
        self._strip_category(parsed, category, rule)
        parsed.cut(_RESTRICTED_WORD)
        parsed.cut(_REGION_CODE_TOKEN)
        parsed.cut(_REGION_WORD)
        return region_code or NO_UNIT, region_code, _clean(parsed.rest())

    def _command_branch(self, parsed, category, rule):
        self._strip_category(parsed, category, rule)
        parsed.cut(_COMMAND_TOKEN)
        return COMMAND_UNIT, COMMAND_CODE, _clean(parsed.rest())

    def _region_branch(self, parsed, category, rule):
        region_code = detect_region_code(parsed.folded)
        self._strip_category(parsed, category, rule)
        for pattern in (_REGION_CODE_TOKEN, _ROMAN_SUFFIX, _NAMED_LOCALITY, _REGION_WORD):
            parsed.cut(pattern)
        fragment = f'{REGION_UNIT} {region_code}' if region_code else REGION_UNIT
        return fragment, region_code, _clean(parsed.rest())

    def _default_branch(self, parsed, category, rule):
        detected = detect_locality_unit(parsed.folded)
        if detected is None:
            self._strip_category(parsed, category, rule)
            return NO_UNIT, None, _clean(parsed.rest())

        name, folded_end = detected
        tail = parsed.text[parsed.original_end(folded_end):]
        return name, None, tail.strip(_EDGE_SEPARATORS) or None
