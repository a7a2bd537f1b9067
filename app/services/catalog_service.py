"""Steam Store catalog search and game details, cached for a week."""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional

from ..exceptions import CatalogError, ProviderUnavailable, ValidationError
from ..normalization import format_release_date, utcnow
from .cache_service import SEVEN_DAYS, TTLCacheService

MIN_SEARCH_LENGTH = 3
MAX_DETAIL_IDS = 10


def normalize_store_details(app_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Reduce a Steam ``appdetails`` payload to the fields Gameo uses.

    The release date is ``None`` for unreleased ("coming soon") games and for
    dates outside 1970-2100.
    """
    release = data.get('release_date') or {}
    release_date = None
    if release.get('date') and not release.get('coming_soon'):
        release_date = format_release_date(release['date'], min_year=1970, max_year=2100)

    developers = data.get('developers') or []
    return {
        'id': app_id,
        'name': data.get('name'),
        'release_date': release_date,
        'cover': (data.get('header_image') or data.get('capsule_image')
                  or data.get('capsule_imagev5')),
        'steam_app_id': app_id,
        'studio': developers[0] if developers else None,
        'publishers': data.get('publishers') or [],
        'genres': data.get('genres') or [],
        'short_description': data.get('short_description') or None,
        'price': data.get('price_overview') or None,
    }


class CatalogService:
    """Search and per-app detail lookups against the Steam Store.

    Args:
        store_client: A :class:`platform_clients.SteamStoreClient` (or any
            object with ``search(term)`` and ``get_app_details(app_id)``).
        cache:        Injected :class:`TTLCacheService`.
        max_workers:  Concurrent detail requests per batch.
    """

    CACHE_TTL = SEVEN_DAYS

    def __init__(self, store_client, cache: TTLCacheService, max_workers: int = 10) -> None:
        self._client = store_client
        self._cache = cache
        self._max_workers = max(1, max_workers)
        self._log = logging.getLogger('gameo.catalog')

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(self, term: str) -> Dict[str, Any]:
        """Search the store catalog.

        Args:
            term: Query, at least three characters once trimmed.

        Returns:
            ``{'total', 'items', 'timestamp', 'cached'}``.

        Raises:
            ValidationError:     Term too short.
            ProviderUnavailable: Steam could not be reached.
        """
        term = (term or '').strip().lower()
        if len(term) < MIN_SEARCH_LENGTH:
            raise ValidationError('Search term must be at least 3 characters')

        key = f"search:{term}"
        cached = self._cache.get(key)
        if cached is not None:
            return dict(cached, cached=True)

        results = self._client.search(term)
        payload = {
            'total': results.get('total', 0),
            'items': results.get('items', []),
            'timestamp': utcnow().isoformat(),
        }
        self._cache.set(key, payload, ttl=self.CACHE_TTL)
        return dict(payload, cached=False)

    # ------------------------------------------------------------------
    # Details
    # ------------------------------------------------------------------

    def get_details(self, app_ids: List[str]) -> Dict[str, Any]:
        """Fetch normalized details for up to ten Steam apps.

        One request is issued per id.  When some ids fail the successful games
        are still returned together with an ``errors`` list.

        Returns:
            ``{'games': {app_id: details}, 'timestamp', 'cached'}`` plus
            ``errors`` when any id failed.

        Raises:
            ValidationError: No ids or more than ten.
            CatalogError:    Every id failed.
        """
        ids = [str(a).strip() for a in (app_ids or []) if str(a).strip()]
        if not ids or len(ids) > MAX_DETAIL_IDS:
            raise ValidationError('Must provide 1-10 game IDs')

        key = f"games:{','.join(sorted(ids))}"
        cached = self._cache.get(key)
        if cached is not None:
            return dict(cached, cached=True)

        games, errors = self.fetch_details(ids)
        if not games:
            if errors:
                raise CatalogError(
                    'Failed to fetch game details: ' + '; '.join(e['error'] for e in errors),
                    errors,
                )
            raise CatalogError('No game data returned from Steam API')

        payload: Dict[str, Any] = {'games': games, 'timestamp': utcnow().isoformat()}
        if errors:
            payload['errors'] = errors
        self._cache.set(key, payload, ttl=self.CACHE_TTL)
        return dict(payload, cached=False)

    def fetch_details(self, app_ids: List[str]):
        """Fetch details for any number of ids through a bounded thread pool.

        Returns:
            ``(games, errors)`` where ``games`` maps app id to normalized
            details and ``errors`` lists ``{'app_id', 'error'}`` per failure.
            Apps Steam reports as unsuccessful appear in neither.
        """
        games: Dict[str, Dict[str, Any]] = {}
        errors: List[Dict[str, str]] = []
        if not app_ids:
            return games, errors

        workers = min(len(app_ids), self._max_workers)
        with ThreadPoolExecutor(max_workers=workers,
                                thread_name_prefix='gameo_catalog') as executor:
            future_map = {executor.submit(self._client.get_app_details, app_id): app_id
                          for app_id in app_ids}
            for future in as_completed(future_map):
                app_id = future_map[future]
                try:
                    data = future.result()
                except ProviderUnavailable as exc:
                    self._log.error("Error fetching details for app %s: %s", app_id, exc)
                    errors.append({'app_id': app_id, 'error': str(exc)})
                    continue
                if data:
                    games[app_id] = normalize_store_details(app_id, data)
        return games, errors

    # ------------------------------------------------------------------
    # Cache administration
    # ------------------------------------------------------------------

    def bust(self, key: Optional[str] = None, all_keys: bool = False) -> int:
        """Drop one cache key, or everything with ``all_keys=True``.

        Returns:
            Number of entries removed.

        Raises:
            ValidationError: Neither *key* nor *all_keys* given.
        """
        if all_keys:
            return self._cache.flush()
        if key:
            return 1 if self._cache.delete(key) else 0
        raise ValidationError('Must provide either a key or all_keys=True')

    def stats(self) -> Dict[str, Any]:
        stats = self._cache.stats()
        stats['sample_keys'] = self._cache.keys()[:10]
        return stats
