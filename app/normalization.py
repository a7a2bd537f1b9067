"""Data-normalization helpers shared by the reconciliation services."""
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

PLACEHOLDER_STUDIOS = frozenset({'Unknown Studio', 'Unknown Publisher'})
DEFAULT_STUDIO = 'Unknown Studio'

# PSN game-list categories -> platform tag
PSN_CATEGORY_PLATFORMS = {
    'ps4_game': 'PS4',
    'ps5_native_game': 'PS5',
    'pspc_game': 'PC',
}

_CANDIDATE_TEXT_FIELDS = (
    'name', 'studio', 'release_date', 'image', 'psn_platform',
    'date_started', 'date_bought', 'last_played',
)
_CANDIDATE_ID_FIELDS = ('steam_app_id', 'psn_id')

_NON_SEARCHABLE = re.compile(r'[^a-zA-Z0-9\s]')
_WHITESPACE = re.compile(r'\s+')

# strptime formats seen in Steam / PSN date strings, tried in order
_DATE_FORMATS = (
    '%d %b, %Y',
    '%b %d, %Y',
    '%d %b %Y',
    '%b %d %Y',
    '%d %B, %Y',
    '%B %d, %Y',
    '%d %B %Y',
    '%B %d %Y',
    '%b %Y',
    '%B %Y',
    '%Y',
)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the naive ``DateTime`` store columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_placeholder_studio(value: Optional[str]) -> bool:
    """Return True when *value* carries no trustworthy studio information."""
    if not value or not isinstance(value, str):
        return True
    value = value.strip()
    return not value or value in PLACEHOLDER_STUDIOS


def sanitize_search_name(game_name: Optional[str]) -> str:
    """Reduce *game_name* to the query format the PSN search API accepts.

    Every character that is not an ASCII letter, digit or whitespace is
    dropped (trademark symbols, accents, apostrophes, dashes...), then runs
    of whitespace collapse to one space.
    """
    if not game_name:
        return ''
    stripped = _NON_SEARCHABLE.sub('', game_name)
    return _WHITESPACE.sub(' ', stripped).strip()


def split_platform_tags(value: Optional[str]) -> List[str]:
    """Split a comma-separated tag string into upper-cased, trimmed tokens."""
    if not value:
        return []
    tokens = []
    for raw in str(value).split(','):
        token = _WHITESPACE.sub(' ', raw).strip().upper()
        if token:
            tokens.append(token)
    return tokens


def _parse_date(value: str) -> Optional[datetime]:
    text = value.strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def format_release_date(value: Any, min_year: Optional[int] = None,
                        max_year: Optional[int] = None) -> Optional[str]:
    """Reformat a provider date string to the short ``"Mon YYYY"`` form.

    Args:
        value:    ISO-8601 string (``2023-08-03T00:00:00Z``) or a Steam style
                  date such as ``"21 Mar, 2020"``.
        min_year: Optional inclusive lower bound on the parsed year.
        max_year: Optional inclusive upper bound on the parsed year.

    Returns:
        E.g. ``"Aug 2023"``, or ``None`` when *value* is empty, unparsable
        or outside the year bounds.
    """
    if not value or not isinstance(value, str):
        return None
    parsed = _parse_date(value)
    if parsed is None:
        return None
    if min_year is not None and parsed.year < min_year:
        return None
    if max_year is not None and parsed.year > max_year:
        return None
    return parsed.strftime('%b %Y')


def blank_to_none(value: Any) -> Any:
    """Map empty / whitespace-only strings to None, leave everything else."""
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def normalize_candidate(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Return a cleaned copy of a candidate game dict.

    Text fields are stripped, source ids are stringified, and empty values
    are dropped so that ``candidate.get(field)`` is falsy exactly when the
    field was not supplied.
    """
    candidate: Dict[str, Any] = {}
    for field in _CANDIDATE_TEXT_FIELDS:
        value = blank_to_none(raw.get(field))
        if value is not None:
            candidate[field] = str(value)
    for field in _CANDIDATE_ID_FIELDS:
        value = raw.get(field)
        if value is None:
            continue
        value = str(value).strip()
        if value:
            candidate[field] = value
    for field in ('price', 'time_played'):
        if raw.get(field) not in (None, ''):
            candidate[field] = raw[field]
    return candidate
