"""Business logic for a user's game library: add-or-merge and direct edits."""
import logging
import threading
import weakref
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from ..exceptions import NotFoundError, ValidationError
from ..normalization import blank_to_none, normalize_candidate
from .enrichment_service import EnrichmentService, apply_enrichment, needs_enrichment
from .identity_service import IdentityResolver
from .merge_service import compute_merge, merge_platform_tags

OUTCOME_CREATED = 'created'
OUTCOME_MERGED = 'merged'
OUTCOME_DUPLICATE = 'duplicate'

_TEXT_FIELDS = ('image', 'release_date', 'studio', 'date_started', 'date_bought',
                'last_played')


def _parse_price(value: Any) -> Optional[float]:
    if value is None or value == '':
        return None
    try:
        return round(float(value), 2)
    except (TypeError, ValueError):
        return None


def _parse_time_played(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class LibraryService:
    """Reconciles incoming games into a user's library and applies user edits,
    delegating persistence to the ``database`` module's helper functions.

    All methods accept a *db* SQLAlchemy session as the first argument so
    that callers control the session lifecycle.  Resolve-then-write runs
    under a per-owner lock; the store's unique constraints catch writers in
    other processes.
    """

    def __init__(self, db_module, enrichment: Optional[EnrichmentService] = None,
                 resolver: Optional[IdentityResolver] = None) -> None:
        """
        Args:
            db_module:  The imported ``database`` module (or any object that
                exposes the lookup, ``insert_game``, ``update_game_fields``,
                ``get_game``, ``get_user_games`` and ``delete_game`` helpers).
            enrichment: Optional enrichment service; without one, ``enrich``
                requests are ignored.
            resolver:   Identity resolver; built from *db_module* by default.
        """
        self._db = db_module
        self._enrichment = enrichment
        self._resolver = resolver or IdentityResolver(db_module)
        # entries vanish once no caller holds or waits on the lock
        self._locks = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()
        self._log = logging.getLogger('gameo.library')

    def _owner_lock(self, owner_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(owner_id)
            if lock is None:
                lock = self._locks[owner_id] = threading.Lock()
            return lock

    # ------------------------------------------------------------------
    # Add-or-merge
    # ------------------------------------------------------------------

    def add_or_merge_game(self, db, owner_id: str, candidate: Dict[str, Any],
                          enrich: bool = False, country: Optional[str] = None,
                          language: Optional[str] = None,
                          age_group: Optional[Any] = None) -> Dict[str, Any]:
        """Add *candidate* to the owner's library or fold it into a match.

        Args:
            db:        SQLAlchemy session.
            owner_id:  Owning user id.
            candidate: Game dict; ``name`` is required, ``steam_app_id``,
                       ``psn_id``, ``psn_platform``, ``studio``,
                       ``release_date`` and the user fields are optional.
            enrich:    Fill missing studio / release date from the PSN store
                       before a new record is created.
            country, language, age_group: Enrichment locale; configured
                       defaults are used when omitted.

        Returns:
            ``{'record': GameRecord, 'outcome': 'created' | 'merged' | 'duplicate'}``.

        Raises:
            ValidationError: ``name`` missing (no store access happens).
            NotFoundError:   The matched record vanished before the merge.
        """
        candidate = normalize_candidate(candidate or {})
        if not candidate.get('name'):
            raise ValidationError('Game name is required')

        with self._owner_lock(owner_id):
            resolved = self._resolver.resolve(db, owner_id, candidate)
            if resolved['existing'] is not None:
                return self._merge_into(db, owner_id, resolved['existing'], candidate)

            if self._enrichment is not None and needs_enrichment(candidate, enrich):
                candidate = self._enrich(candidate, country, language, age_group)

            try:
                record = self._db.insert_game(db, owner_id, self._creation_fields(candidate))
            except IntegrityError:
                # another writer created the same source id since we resolved
                resolved = self._resolver.resolve(db, owner_id, candidate)
                if resolved['existing'] is None:
                    raise
                return self._merge_into(db, owner_id, resolved['existing'], candidate)

        return {'record': record, 'outcome': OUTCOME_CREATED}

    def _merge_into(self, db, owner_id: str, existing, candidate: Dict[str, Any]) -> Dict[str, Any]:
        staged = compute_merge(existing, candidate)
        if staged is None:
            self._log.debug("%r already in library of %s", candidate['name'], owner_id)
            return {'record': existing, 'outcome': OUTCOME_DUPLICATE}

        try:
            record = self._db.update_game_fields(db, owner_id, existing.id, staged)
        except IntegrityError:
            # the id belongs to a different record of this owner; keep the tags only
            self._log.warning("Source id of %r already held by another game of %s",
                              candidate['name'], owner_id)
            staged = {k: v for k, v in staged.items() if k not in ('steam_app_id', 'psn_id')}
            if 'platform_tags' not in staged:
                return {'record': existing, 'outcome': OUTCOME_DUPLICATE}
            record = self._db.update_game_fields(db, owner_id, existing.id, staged)
        if record is None:
            raise NotFoundError(existing.id, owner_id)
        self._log.info("Merged %s into game %s for %s",
                       sorted(k for k in staged if k != 'updated_at'), existing.id, owner_id)
        return {'record': record, 'outcome': OUTCOME_MERGED}

    def _enrich(self, candidate: Dict[str, Any], country, language, age_group) -> Dict[str, Any]:
        try:
            result = self._enrichment.enrich_game(candidate['name'], country, language, age_group)
        except Exception as e:
            self._log.warning("Enrichment failed for %r: %s", candidate['name'], e)
            return candidate
        return apply_enrichment(candidate, result)

    @staticmethod
    def _creation_fields(candidate: Dict[str, Any]) -> Dict[str, Any]:
        fields: Dict[str, Any] = {
            'name': candidate['name'],
            'steam_app_id': candidate.get('steam_app_id'),
            'psn_id': candidate.get('psn_id'),
            'platform_tags': merge_platform_tags(None, candidate.get('psn_platform')) or None,
            'price': _parse_price(candidate.get('price')),
            'time_played': _parse_time_played(candidate.get('time_played', 0)),
        }
        for field in _TEXT_FIELDS:
            fields[field] = candidate.get(field)
        return fields

    # ------------------------------------------------------------------
    # Direct library access
    # ------------------------------------------------------------------

    def list_games(self, db, owner_id: str) -> List:
        """Return the owner's games, most recently added first."""
        return self._db.get_user_games(db, owner_id)

    def find_games_by_name(self, db, owner_id: str, name: str) -> List:
        """Return the owner's games whose name matches *name* ignoring case."""
        return self._db.find_games_by_name(db, owner_id, name, case_insensitive=True)

    def get_game(self, db, owner_id: str, game_id: str):
        """Return one game or raise :class:`NotFoundError`."""
        record = self._db.get_game(db, owner_id, game_id)
        if record is None:
            raise NotFoundError(game_id, owner_id)
        return record

    def update_game(self, db, owner_id: str, game_id: str, changes: Dict[str, Any]):
        """Apply a direct user edit.

        Only keys present in *changes* are touched.  Blank strings clear a
        field, ``price`` is parsed as a float and ``time_played`` as an int
        (0 when unparsable).  Source-id and platform-tag edits bypass the
        merge rules: this is the owner's explicit choice.

        Raises:
            ValidationError: Blank ``name``, or a source id already used by
                another game of this owner.
            NotFoundError:   The game does not exist for this owner.
        """
        fields: Dict[str, Any] = {}
        if 'name' in changes:
            name = blank_to_none(changes['name'])
            if not name:
                raise ValidationError('Game name cannot be empty')
            fields['name'] = name
        for field in _TEXT_FIELDS:
            if field in changes:
                fields[field] = blank_to_none(changes[field])
        for field in ('steam_app_id', 'psn_id'):
            if field in changes:
                value = changes[field]
                fields[field] = blank_to_none(str(value)) if value is not None else None
        if 'platform_tags' in changes:
            fields['platform_tags'] = merge_platform_tags(None, changes['platform_tags']) or None
        if 'price' in changes:
            fields['price'] = _parse_price(changes['price'])
        if 'time_played' in changes:
            fields['time_played'] = _parse_time_played(changes['time_played'])

        try:
            record = self._db.update_game_fields(db, owner_id, game_id, fields)
        except IntegrityError as e:
            raise ValidationError('Another game in this library already has that source id') from e
        if record is None:
            raise NotFoundError(game_id, owner_id)
        return record

    def delete_game(self, db, owner_id: str, game_id: str) -> bool:
        """Remove a game. Returns ``False`` when it did not exist."""
        return self._db.delete_game(db, owner_id, game_id)
