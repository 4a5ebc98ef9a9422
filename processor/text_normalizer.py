"""Accent and case folding helpers used to compare titles and unit names."""
import re
import unicodedata
from typing import List, Tuple

# Characters that NFKD decomposition leaves untouched.
_FALLBACK = {
    'ß': 'ss',
    'æ': 'ae',
    'Æ': 'AE',
    'œ': 'oe',
    'Œ': 'OE',
    'ø': 'o',
    'Ø': 'O',
    'ł': 'l',
    'Ł': 'L',
    'đ': 'd',
    'Đ': 'D',
    '\u2010': '-',
    '\u2011': '-',
    '\u2012': '-',
    '\u2013': '-',
    '\u2014': '-',
    '\u2015': '-',
    '\u00ad': '',
    # replacement character left behind by mis-decoded input
    '\ufffd': '',
}

_UNIT_PREFIXES = re.compile(r'^(?:COMANDO\s+REGIONAL|REGIONAL|DIVISAO)\s+')
_UNIT_STATE_SUFFIX = re.compile(r'\s+-\s+[A-Z]{2}$')
_UNIT_DANGLING_DASH = re.compile(r'\s+-\s*$')
_UNIT_NOTE_SUFFIX = re.compile(r'\s+\([^)]*\)\s*$')


def _fold_char(char: str) -> str:
    if char in _FALLBACK:
        return _FALLBACK[char]
    decomposed = unicodedata.normalize('NFKD', char)
    return ''.join(c for c in decomposed if not unicodedata.combining(c))


def normalize(text: str, upper: bool = False) -> str:
    """
    Strip accents and case-fold text for comparison.

    Args:
        text: Any text, possibly empty or None
        upper: Return upper-case instead of lower-case

    Returns:
        Folded text; empty string for empty input
    """
    if not text:
        return ''
    folded = ''.join(_fold_char(char) for char in text)
    return folded.upper() if upper else folded.lower()


def fold_with_offsets(text: str) -> Tuple[str, List[int]]:
    """
    Fold text to lower-case ASCII and keep a map back to the original.

    For each character of the folded output, the returned offsets list
    stores the index of the originating character in ``text``, so spans
    found on the folded text can be located in the original title.
    """
    chars: List[str] = []
    offsets: List[int] = []
    for index, char in enumerate(text or ''):
        for replacement in _fold_char(char).lower():
            chars.append(replacement)
            offsets.append(index)
    return ''.join(chars), offsets


def normalize_unit_name(text: str) -> str:
    """Build the lookup key for a unit name: REGIONAL/DIVISAO prefixes and UF suffix dropped."""
    key = normalize(text, upper=True).strip()
    key = _UNIT_PREFIXES.sub('', key)
    key = _UNIT_STATE_SUFFIX.sub('', key)
    key = _UNIT_DANGLING_DASH.sub('', key)
    key = _UNIT_NOTE_SUFFIX.sub('', key)
    return re.sub(r'\s+', ' ', key).strip()
