"""Best-effort publisher / release-date enrichment from the PSN store search."""
import logging
from typing import Any, Dict, Optional

from ..exceptions import ProviderUnavailable
from ..normalization import format_release_date, is_placeholder_studio, sanitize_search_name
from .cache_service import ONE_HOUR, SEVEN_DAYS, TTLCacheService

logger = logging.getLogger('gameo.enrichment')


def empty_result() -> Dict[str, Optional[str]]:
    return {'publisher': None, 'release_date': None}


def needs_enrichment(candidate: Dict[str, Any], enrich: bool) -> bool:
    """Return True when *candidate* should be routed through enrichment.

    Enrichment must have been requested, and the candidate must either have
    no trusted studio or no release date.
    """
    if not enrich:
        return False
    return is_placeholder_studio(candidate.get('studio')) or not candidate.get('release_date')


def apply_enrichment(candidate: Dict[str, Any],
                     result: Dict[str, Optional[str]]) -> Dict[str, Any]:
    """Return a copy of *candidate* with enrichment gaps filled.

    The publisher replaces the studio only when the studio is absent or a
    placeholder; the release date is filled only when none was supplied.
    """
    merged = dict(candidate)
    if result.get('publisher') and is_placeholder_studio(merged.get('studio')):
        merged['studio'] = result['publisher']
    if result.get('release_date') and not merged.get('release_date'):
        merged['release_date'] = result['release_date']
    return merged


def _first_text(*values: Any) -> Optional[str]:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _extract_metadata(entry: Dict[str, Any]) -> Dict[str, Optional[str]]:
    """Pull publisher and release date out of one search link.

    Values of the wrong type are ignored, so a malformed link yields nulls.
    """
    default_sku = entry.get('default_sku')
    if not isinstance(default_sku, dict):
        default_sku = {}
    publisher = _first_text(entry.get('provider_name'), default_sku.get('provider_name'))
    raw_date = _first_text(entry.get('release_date'), entry.get('releaseDate'),
                           default_sku.get('release_date'))
    return {
        'publisher': publisher,
        'release_date': format_release_date(raw_date),
    }


class EnrichmentService:
    """Looks up publisher and release date for a game name.

    Args:
        search_client:     Object exposing ``search_game(query, country,
                           language, age_group)`` (see
                           :class:`platform_clients.PSNSearchClient`).
        cache:             Injected :class:`TTLCacheService`.
        default_country:   Used by :meth:`enrich_game` when none is given.
        default_language:  Used by :meth:`enrich_game` when none is given.
        default_age_group: Used by :meth:`enrich_game` when none is given.
    """

    HIT_TTL = SEVEN_DAYS
    MISS_TTL = ONE_HOUR

    def __init__(self, search_client, cache: TTLCacheService,
                 default_country: str = 'US', default_language: str = 'en',
                 default_age_group: int = 19) -> None:
        self._client = search_client
        self._cache = cache
        self.default_country = default_country
        self.default_language = default_language
        self.default_age_group = default_age_group

    @staticmethod
    def cache_key(sanitized_name: str, country: str, language: str, age_group: Any) -> str:
        return f"psnsearch:{sanitized_name.lower()}:{country}:{language}:{age_group}"

    def enrich(self, game_name: str, country: str, language: str,
               age_group: Any) -> Dict[str, Optional[str]]:
        """Return ``{'publisher', 'release_date'}`` for *game_name*.

        Never raises for provider problems: timeouts, non-2xx responses and
        empty result lists all come back as ``None`` values, cached for an
        hour so the lookup is retried later.
        """
        if not game_name or not country or not language or not age_group:
            return empty_result()

        query = sanitize_search_name(game_name)
        if not query:
            return empty_result()

        key = self.cache_key(query, country, language, age_group)
        cached = self._cache.get(key)
        if cached is not None:
            return dict(cached)

        result = self._lookup(game_name, query, country, language, age_group)
        ttl = self.HIT_TTL if (result['publisher'] or result['release_date']) else self.MISS_TTL
        self._cache.set(key, dict(result), ttl=ttl)
        return result

    def enrich_game(self, name: str, country: Optional[str] = None,
                    language: Optional[str] = None,
                    age_group: Optional[Any] = None) -> Dict[str, Optional[str]]:
        """:meth:`enrich` with the configured locale defaults filled in."""
        return self.enrich(
            name,
            country or self.default_country,
            language or self.default_language,
            age_group or self.default_age_group,
        )

    def _lookup(self, game_name: str, query: str, country: str, language: str,
                age_group: Any) -> Dict[str, Optional[str]]:
        try:
            data = self._client.search_game(query, country, language, age_group)
        except ProviderUnavailable as e:
            logger.warning("PSN SearchGame lookup failed for %r: %s", game_name, e)
            return empty_result()

        links = data.get('links') if isinstance(data, dict) else None
        if not isinstance(links, list) or not links or not isinstance(links[0], dict):
            logger.info("PSN SearchGame: no results for %r", game_name)
            return empty_result()

        # first link is the provider's best match
        result = _extract_metadata(links[0])
        logger.debug("PSN SearchGame %r -> %s", game_name, result)
        return result
