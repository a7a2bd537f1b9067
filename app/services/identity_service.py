"""Decides which existing library record, if any, a candidate game is."""
import logging
from typing import Any, Dict, Optional


class IdentityResolver:
    """Resolves a candidate against one owner's library.

    Source ids are stronger evidence than names, so lookups run in this
    order and the first hit wins:

    1. ``(owner, steam_app_id)``
    2. ``(owner, psn_id)``
    3. for PSN candidates only: a record with exactly the same name that
       already carries *some* psn id (PS4 / PS5 releases of one title).

    When step 3 finds several records the candidate is treated as new rather
    than merged into an arbitrary one.

    Args:
        db_module: The imported ``database`` module (or any object exposing
            ``find_game_by_steam_app_id``, ``find_game_by_psn_id`` and
            ``find_psn_games_by_name``).
    """

    def __init__(self, db_module) -> None:
        self._db = db_module
        self._log = logging.getLogger('gameo.identity')

    def resolve(self, db, owner_id: str, candidate: Dict[str, Any]) -> Dict[str, Optional[Any]]:
        """Return ``{'existing': GameRecord | None, 'matched_by': str | None}``.

        ``matched_by`` is ``'steam_app_id'``, ``'psn_id'`` or ``'name'``.
        Read-only.
        """
        steam_app_id = candidate.get('steam_app_id')
        psn_id = candidate.get('psn_id')

        if steam_app_id:
            existing = self._db.find_game_by_steam_app_id(db, owner_id, steam_app_id)
            if existing:
                return {'existing': existing, 'matched_by': 'steam_app_id'}

        if psn_id:
            existing = self._db.find_game_by_psn_id(db, owner_id, psn_id)
            if existing:
                return {'existing': existing, 'matched_by': 'psn_id'}

            name = candidate.get('name')
            if name:
                matches = self._db.find_psn_games_by_name(db, owner_id, name)
                if len(matches) == 1:
                    return {'existing': matches[0], 'matched_by': 'name'}
                if len(matches) > 1:
                    self._log.warning(
                        "%d PSN records named %r for owner %s; not merging %s into any",
                        len(matches), name, owner_id, psn_id,
                    )

        return {'existing': None, 'matched_by': None}
