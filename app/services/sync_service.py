"""Bulk import of a user's Steam or PlayStation library into Gameo."""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import GameoError, ProviderUnavailable, SyncInProgressError
from ..normalization import DEFAULT_STUDIO
from .library_service import OUTCOME_CREATED, OUTCOME_MERGED, LibraryService

STEAM_COVER_URL = "https://cdn.akamai.steamstatic.com/steam/apps/{app_id}/library_600x900.jpg"

_OUTCOME_STATUS = {
    OUTCOME_CREATED: 'added',
    OUTCOME_MERGED: 'merged',
}


class SyncReport:
    """Counters plus an ordered ``(status, game name)`` log for one sync run.

    Status values: ``syncing``, ``added``, ``merged``, ``skipped``, ``failed``.
    """

    def __init__(self, source: str) -> None:
        self.source = source
        self.added = 0
        self.merged = 0
        self.skipped = 0
        self.failed = 0
        self.log: List[Tuple[str, str]] = []

    def record(self, status: str, name: str) -> None:
        self.log.append((status, name))
        if status in ('added', 'merged', 'skipped', 'failed'):
            setattr(self, status, getattr(self, status) + 1)

    @property
    def total(self) -> int:
        return self.added + self.merged + self.skipped + self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source': self.source,
            'added': self.added,
            'merged': self.merged,
            'skipped': self.skipped,
            'failed': self.failed,
            'log': [{'status': s, 'name': n} for s, n in self.log],
        }


def steam_candidate(game: Dict[str, Any], details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build a library candidate from a ``GetOwnedGames`` entry.

    *details* is the normalized store entry from
    :func:`app.services.catalog_service.normalize_store_details`, when known.
    """
    app_id = str(game.get('appid'))
    candidate: Dict[str, Any] = {
        'name': game.get('name') or 'Unknown Game',
        'steam_app_id': app_id,
        'image': STEAM_COVER_URL.format(app_id=app_id),
        'studio': DEFAULT_STUDIO,
        'time_played': game.get('playtime_forever', 0),
    }
    last_played = game.get('rtime_last_played') or 0
    if last_played > 0:
        candidate['last_played'] = datetime.fromtimestamp(
            last_played, tz=timezone.utc).strftime('%Y-%m-%d')
    if details:
        if details.get('studio'):
            candidate['studio'] = details['studio']
        if details.get('release_date'):
            candidate['release_date'] = details['release_date']
    return candidate


def psn_candidate(title: Dict[str, Any]) -> Dict[str, Any]:
    """Build a library candidate from a :meth:`PSNClient.get_owned_games` entry."""
    return {
        'name': title.get('name') or title.get('psn_id'),
        'psn_id': title.get('psn_id'),
        'psn_platform': title.get('psn_platform'),
        'image': title.get('image'),
    }


class SyncService:
    """Imports third-party libraries through :class:`LibraryService`.

    Store-detail lookups fan out through the catalog service's bounded thread
    pool; reconciliation itself runs on the calling thread so the caller's
    SQLAlchemy session is never shared between threads.  Only one sync per
    owner may run at a time in this process.

    Args:
        db_module:       The imported ``database`` module.
        library:         Library service used for every candidate.
        steam_client:    :class:`platform_clients.SteamAPIClient` or ``None``.
        psn_client:      :class:`platform_clients.PSNClient` or ``None``.
        catalog:         :class:`CatalogService` for Steam store details.
    """

    def __init__(self, db_module, library: LibraryService, steam_client=None,
                 psn_client=None, catalog=None) -> None:
        self._db = db_module
        self._library = library
        self._steam = steam_client
        self._psn = psn_client
        self._catalog = catalog
        self._active: set = set()
        self._active_lock = threading.Lock()
        self._log = logging.getLogger('gameo.sync')

    def _begin(self, owner_id: str) -> None:
        with self._active_lock:
            if owner_id in self._active:
                raise SyncInProgressError(owner_id)
            self._active.add(owner_id)

    def _end(self, owner_id: str) -> None:
        with self._active_lock:
            self._active.discard(owner_id)

    def is_syncing(self, owner_id: str) -> bool:
        with self._active_lock:
            return owner_id in self._active

    # ------------------------------------------------------------------
    # Steam
    # ------------------------------------------------------------------

    def sync_steam_library(self, db, owner_id: str, steam_id: str,
                           fetch_details: bool = True, enrich: bool = False,
                           **locale) -> SyncReport:
        """Import every game of a Steam account.

        Games whose app id is already in the library are skipped without a
        store lookup.  For the rest, store details (studio, release date) are
        fetched concurrently when *fetch_details* is set.

        Raises:
            SyncInProgressError: A sync for *owner_id* is already running.
            ProviderUnavailable: No Steam client configured, or the owned
                games list could not be fetched.
        """
        if self._steam is None:
            raise ProviderUnavailable('Steam API key not configured')
        self._begin(owner_id)
        try:
            owned = self._steam.get_owned_games(steam_id)
            self._log.info("Steam sync for %s: %d owned games", owner_id, len(owned))
            report = SyncReport('steam')

            known = {g.steam_app_id for g in self._db.get_user_games(db, owner_id)
                     if g.steam_app_id}
            pending = []
            for game in owned:
                if str(game.get('appid')) in known:
                    report.record('skipped', game.get('name') or str(game.get('appid')))
                else:
                    pending.append(game)

            details: Dict[str, Dict[str, Any]] = {}
            if fetch_details and self._catalog is not None and pending:
                details, errors = self._catalog.fetch_details([str(g['appid']) for g in pending])
                for err in errors:
                    self._log.warning("No store details for app %s: %s", err['app_id'], err['error'])

            for game in pending:
                candidate = steam_candidate(game, details.get(str(game.get('appid'))))
                self._reconcile(db, owner_id, candidate, enrich, locale, report)
        finally:
            self._end(owner_id)

        self._log.info("Steam sync for %s done: %s", owner_id, report.to_dict())
        return report

    # ------------------------------------------------------------------
    # PlayStation
    # ------------------------------------------------------------------

    def sync_psn_library(self, db, owner_id: str, enrich: bool = True,
                         **locale) -> SyncReport:
        """Import every title of the connected PSN account.

        PS4 and PS5 releases with the same name collapse into one record
        whose platform tags list both.

        Raises:
            SyncInProgressError: A sync for *owner_id* is already running.
            ProviderUnavailable: PSN is not connected.
        """
        if self._psn is None or not self._psn.is_authenticated:
            raise ProviderUnavailable('PSN account not connected')
        self._begin(owner_id)
        try:
            titles = self._psn.get_owned_games()
            self._log.info("PSN sync for %s: %d titles", owner_id, len(titles))
            report = SyncReport('psn')
            for title in titles:
                self._reconcile(db, owner_id, psn_candidate(title), enrich, locale, report)
        finally:
            self._end(owner_id)

        self._log.info("PSN sync for %s done: %s", owner_id, report.to_dict())
        return report

    # ------------------------------------------------------------------

    def _reconcile(self, db, owner_id: str, candidate: Dict[str, Any], enrich: bool,
                   locale: Dict[str, Any], report: SyncReport) -> None:
        name = candidate.get('name') or '?'
        report.record('syncing', name)
        try:
            result = self._library.add_or_merge_game(db, owner_id, candidate,
                                                     enrich=enrich, **locale)
        except (GameoError, SQLAlchemyError) as e:
            self._log.error("Sync step failed for %r (owner %s): %s", name, owner_id, e)
            if isinstance(e, SQLAlchemyError):
                # an aborted transaction would fail every later lookup on this session
                db.rollback()
            report.record('failed', name)
            return
        report.record(_OUTCOME_STATUS.get(result['outcome'], 'skipped'), name)
