"""Exception types raised by the Gameo services and platform clients."""
from typing import Dict, List, Optional


class GameoError(Exception):
    """Base class for all Gameo errors."""


class ValidationError(GameoError):
    """Raised when caller input is rejected before any store access."""


class NotFoundError(GameoError):
    """Raised when a library record targeted by an update no longer exists."""

    def __init__(self, game_id: str, owner_id: Optional[str] = None) -> None:
        self.game_id = game_id
        self.owner_id = owner_id
        super().__init__(f"Game {game_id} not found")


class ProviderUnavailable(GameoError):
    """Raised when an external catalog provider times out or returns non-2xx."""


class CatalogError(ProviderUnavailable):
    """Raised when every per-id detail request of a batch failed.

    ``errors`` holds one ``{'app_id': ..., 'error': ...}`` dict per failed id.
    """

    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None) -> None:
        self.errors = list(errors or [])
        super().__init__(message)


class SyncInProgressError(GameoError):
    """Raised when a library sync is already running for the same owner."""

    def __init__(self, owner_id: str) -> None:
        self.owner_id = owner_id
        super().__init__(f"A library sync is already running for owner {owner_id}")
