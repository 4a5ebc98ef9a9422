"""Resolve free-text unit fragments to reference organizational units."""
import logging
import re
from typing import Callable, Iterable, List, Optional

from processor.models import NO_UNIT, OrganizationalUnit, UnitMatch
from processor.text_normalizer import normalize, normalize_unit_name

logger = logging.getLogger(__name__)

REGION_NAMES = {
    'VP1': 'VALE DO PARAIBA I',
    'VP2': 'VALE DO PARAIBA II',
    'VP3': 'VALE DO PARAIBA III',
    'LN': 'LITORAL NORTE',
}

_REGION_LITERAL = re.compile(
    r'^REGIONAL\s*(' + '|'.join(sorted(REGION_NAMES, key=len, reverse=True)) + r')$'
)

# Unit name substring -> abbreviations accepted in titles. More specific keys first.
KEYWORD_ALIASES = (
    ('EXTREMO NORTE', ('EXT NORTE', 'EXT. NORTE', 'EXTR NORTE', 'EXT N')),
    ('EXTREMO SUL', ('EXT SUL', 'EXT. SUL', 'EXTR SUL', 'EXT S')),
    ('EXTREMO LESTE', ('EXT LESTE', 'EXT. LESTE', 'EXTR LESTE', 'EXT L')),
    ('EXTREMO OESTE', ('EXT OESTE', 'EXT. OESTE', 'EXTR OESTE', 'EXT O')),
    ('JACAREI CENTRO', ('DIVJAC CENTRO', 'JAC CENTRO')),
    ('SAO JOSE DOS CAMPOS LESTE', ('DIVLESTE', 'DIV LESTE', 'SJC LESTE')),
    ('JACAREI', ('DIVJAC', 'JAC', 'JCR')),
    ('SAO JOSE DOS CAMPOS', ('SJC', 'S J CAMPOS', 'SAO JOSE')),
    ('TAUBATE', ('TBT', 'TAUBA')),
)


class UnitCache:
    """
    Process-wide cache of the reference units.

    Loaded lazily through ``loader`` on first access and kept until
    ``invalidate`` is called. A failing load leaves the cache empty.
    """

    def __init__(self, loader: Callable[[], Iterable[OrganizationalUnit]]):
        self._loader = loader
        self._units: Optional[List[OrganizationalUnit]] = None

    @property
    def loaded(self) -> bool:
        return self._units is not None

    def get(self) -> List[OrganizationalUnit]:
        if self._units is None:
            units = sorted(self._loader(), key=lambda unit: (unit.normalized_name, unit.id))
            logger.info(f"Loaded {len(units)} reference units into cache")
            self._units = units
        return self._units

    def invalidate(self) -> None:
        self._units = None


class UnitMatcher:
    """Matches unit fragments using literal region codes, exact, substring and alias passes."""

    def __init__(self, cache: UnitCache):
        self.cache = cache

    def resolve(self, fragment: str) -> UnitMatch:
        """
        Resolve a unit fragment to a reference unit.

        Args:
            fragment: Free-text unit fragment from a title

        Returns:
            UnitMatch; both fields are None when nothing matches
        """
        if not fragment or fragment == NO_UNIT:
            return UnitMatch()

        units = self.cache.get()

        region_match = self._match_region_literal(normalize(fragment, upper=True).strip(), units)
        if region_match is not None:
            return region_match

        key = normalize_unit_name(fragment)
        if not key:
            return UnitMatch()

        for strategy in (self._match_exact, self._match_substring, self._match_alias):
            unit = strategy(key, units)
            if unit is not None:
                return UnitMatch(unit_id=unit.id, region_code=unit.region_code)

        return UnitMatch()

    def _match_region_literal(self, upper: str, units: List[OrganizationalUnit]) -> Optional[UnitMatch]:
        match = _REGION_LITERAL.match(upper)
        if not match:
            return None
        code = match.group(1)
        pattern = re.compile(r'\b' + re.escape(REGION_NAMES[code]) + r'\b')
        for unit in units:
            if pattern.search(unit.normalized_name):
                return UnitMatch(unit_id=unit.id, region_code=code)
        return UnitMatch(region_code=code)

    def _match_exact(self, key: str, units: List[OrganizationalUnit]) -> Optional[OrganizationalUnit]:
        for unit in units:
            if unit.normalized_name == key:
                return unit
        return None

    def _match_substring(self, key: str, units: List[OrganizationalUnit]) -> Optional[OrganizationalUnit]:
        for unit in units:
            name = unit.normalized_name
            if name and (key in name or name in key):
                return unit
        return None

    def _match_alias(self, key: str, units: List[OrganizationalUnit]) -> Optional[OrganizationalUnit]:
        for table_key, patterns in KEYWORD_ALIASES:
            if not any(_contains_word(key, pattern) for pattern in patterns):
                continue
            for unit in units:
                if table_key in unit.normalized_name:
                    return unit
        return None


def _contains_word(text: str, phrase: str) -> bool:
    return re.search(r'(?<!\w)' + re.escape(phrase) + r'(?!\w)', text) is not None
