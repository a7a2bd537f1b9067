"""Computes the minimal update that folds a candidate into an existing record."""
from datetime import datetime
from typing import Any, Dict, Optional

from ..normalization import split_platform_tags, utcnow


def merge_platform_tags(existing: Optional[str], incoming: Optional[str]) -> str:
    """Union two comma-separated tag strings.

    Tokens are whitespace-trimmed and upper-cased, de-duplicated, sorted and
    joined with ``", "``.  The operation is commutative and idempotent.
    """
    tags = set(split_platform_tags(existing)) | set(split_platform_tags(incoming))
    return ', '.join(sorted(tags))


def compute_merge(existing, candidate: Dict[str, Any],
                  now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    """Return the fields to write on *existing*, or ``None`` if nothing is new.

    * a source id is staged only into an empty slot, so a record that already
      holds a psn id keeps it when another PSN variant merges in;
    * platform tags are staged only when the union differs from the stored
      string byte-for-byte.

    Any staged update also carries ``updated_at``.
    """
    staged: Dict[str, Any] = {}

    steam_app_id = candidate.get('steam_app_id')
    if steam_app_id and not existing.steam_app_id:
        staged['steam_app_id'] = steam_app_id

    psn_id = candidate.get('psn_id')
    if psn_id and not existing.psn_id:
        staged['psn_id'] = psn_id

    incoming_tags = candidate.get('psn_platform')
    if incoming_tags:
        merged_tags = merge_platform_tags(existing.platform_tags, incoming_tags)
        if merged_tags != (existing.platform_tags or ''):
            staged['platform_tags'] = merged_tags

    if not staged:
        return None
    staged['updated_at'] = now or utcnow()
    return staged
