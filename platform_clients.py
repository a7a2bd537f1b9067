"""
platform_clients.py
===================
HTTP clients for the third-party services the Gameo library sync talks to:

* **Steam Web API**: a user's owned games (``IPlayerService/GetOwnedGames``)
* **Steam Store API**: catalog search and per-app details
* **PlayStation Network**: NPSSO token auth, then the mobile game-list API
* **PSN SearchGame**: public store search used for publisher / release-date
  enrichment

Library clients extend :class:`GamePlatformClient` and share the
``get_owned_games`` / ``get_platform_name`` interface.  Catalog and search
clients raise :class:`~app.exceptions.ProviderUnavailable` on timeouts,
transport errors and non-2xx responses; callers decide whether that is fatal.

Configuration keys (``config.json``)
-------------------------------------
::

    "steam_api_key": "YOUR_STEAM_API_KEY_HERE",
    "psn_npsso": "YOUR_PSN_NPSSO_TOKEN_HERE",
    "request_timeout": 10
"""
from __future__ import annotations

import logging
import time
import urllib.parse
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests

from app.exceptions import ProviderUnavailable
from app.normalization import PSN_CATEGORY_PLATFORMS

logger = logging.getLogger(__name__)

_BROWSER_UA = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)


class GamePlatformClient(ABC):
    """Abstract base class for clients that can list a user's library."""

    @abstractmethod
    def get_owned_games(self, user_id: str) -> List[Dict[str, Any]]:
        """Return the user's games; empty list when unavailable."""

    @abstractmethod
    def get_platform_name(self) -> str:
        """Return the platform name (e.g. 'steam', 'psn')."""


# ---------------------------------------------------------------------------
# Tiny OAuth2 helper
# ---------------------------------------------------------------------------

class _OAuth2Mixin:
    """Mixin that adds token storage, expiry tracking and the auth header."""

    def __init__(self) -> None:
        self._access_token:  Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._token_expiry:  float = 0.0   # unix timestamp

    @property
    def is_authenticated(self) -> bool:
        return bool(self._access_token)

    def _is_token_expired(self) -> bool:
        return time.time() >= self._token_expiry - 30  # 30-second buffer

    def _store_tokens(self, data: Dict[str, Any]) -> None:
        self._access_token  = data.get('access_token', '')
        self._refresh_token = data.get('refresh_token', self._refresh_token)
        expires_in          = int(data.get('expires_in', 3600))
        self._token_expiry  = time.time() + expires_in
        logger.info("%s: tokens stored, expires in %ds", self.__class__.__name__, expires_in)

    def _auth_header(self) -> Dict[str, str]:
        return {'Authorization': f'Bearer {self._access_token}'}


# ---------------------------------------------------------------------------
# Steam
# ---------------------------------------------------------------------------

class SteamAPIClient(GamePlatformClient):
    """Steam Web API client for a user's owned games."""

    BASE_URL = "https://api.steampowered.com"

    def __init__(self, api_key: str, timeout: int = 10) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self.session = requests.Session()

    def get_platform_name(self) -> str:
        return "steam"

    def get_owned_games(self, user_id: str) -> List[Dict[str, Any]]:
        """Get the games owned by a Steam user.

        Args:
            user_id: 64-bit SteamID of the user.

        Returns:
            Raw Steam entries (``appid``, ``name``, ``playtime_forever``,
            ``rtime_last_played``...).

        Raises:
            ProviderUnavailable: The Web API could not be reached or returned
                no ``games`` list (private profile, bad key).
        """
        url = f"{self.BASE_URL}/IPlayerService/GetOwnedGames/v0001/"
        params = {
            'key': self.api_key,
            'steamid': user_id,
            'include_appinfo': 1,
            'include_played_free_games': 1,
            'format': 'json',
        }
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("Error fetching games from Steam API: %s", e)
            raise ProviderUnavailable(f"Failed to fetch Steam library: {e}") from e

        games = data.get('response', {}).get('games')
        if games is None:
            raise ProviderUnavailable("Steam library unavailable (private profile or bad key)")
        return games


class SteamStoreClient:
    """Client for the public Steam Store API (search and app details)."""

    BASE_URL = "https://store.steampowered.com/api"

    def __init__(self, timeout: int = 10) -> None:
        self.timeout = timeout
        self.session = requests.Session()

    def search(self, term: str) -> Dict[str, Any]:
        """Search the store for *term*.

        Returns:
            ``{'total': int, 'items': [...]}``.

        Raises:
            ProviderUnavailable: Timeout, transport error, non-2xx or a
                non-object JSON body.
        """
        url = f"{self.BASE_URL}/storesearch/"
        params = {'term': term, 'cc': 'US', 'l': 'en', 'count': 50}
        headers = {
            'User-Agent': _BROWSER_UA,
            'Accept': 'application/json',
            'Accept-Language': 'en-US,en;q=0.9',
        }
        try:
            response = self.session.get(url, params=params, headers=headers,
                                        timeout=self.timeout)
        except requests.Timeout as e:
            raise ProviderUnavailable("Request timeout: Steam API took too long to respond") from e
        except requests.RequestException as e:
            logger.error("Steam search request failed for %r: %s", term, e)
            raise ProviderUnavailable(f"Failed to search Steam: {e}") from e

        if not response.ok:
            raise ProviderUnavailable(
                f"Steam API returned {response.status_code}: {response.text[:200]}"
            )
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderUnavailable("Invalid response format from Steam API") from e
        if not isinstance(data, dict):
            raise ProviderUnavailable("Invalid response format from Steam API")
        return {'total': data.get('total', 0), 'items': data.get('items', [])}

    def get_app_details(self, app_id: str) -> Optional[Dict[str, Any]]:
        """Fetch store details for a single app.

        The store's ``appdetails`` endpoint is unreliable with several ids per
        request, so callers issue one request per id.

        Returns:
            The ``data`` object, or ``None`` when Steam reports no success.

        Raises:
            ProviderUnavailable: Timeout, transport error or non-2xx.
        """
        url = f"{self.BASE_URL}/appdetails"
        params = {'appids': app_id, 'cc': 'US', 'l': 'en'}
        try:
            response = self.session.get(url, params=params,
                                        headers={'User-Agent': 'Gameo/1.0 (Steam API Client)'},
                                        timeout=self.timeout)
        except requests.RequestException as e:
            raise ProviderUnavailable(f"Steam request failed for app {app_id}: {e}") from e
        if not response.ok:
            raise ProviderUnavailable(
                f"Steam API returned {response.status_code} for app {app_id}"
            )
        try:
            data = response.json() or {}
        except ValueError as e:
            raise ProviderUnavailable(f"Invalid JSON from Steam for app {app_id}") from e

        entry = data.get(str(app_id)) or {}
        if entry.get('success') and entry.get('data'):
            return entry['data']
        return None


# ---------------------------------------------------------------------------
# PlayStation Network
# ---------------------------------------------------------------------------

def _extract_title_image(title: Dict[str, Any]) -> str:
    """Safely extract the image URL from a PSN title dict."""
    image = title.get('image')
    if isinstance(image, dict):
        return image.get('url', '')
    if isinstance(image, str):
        return image
    return ''


class PSNClient(_OAuth2Mixin, GamePlatformClient):
    """PlayStation Network library client using NPSSO token authentication.

    Sony has no public OAuth registration for third parties.  The user
    supplies the **NPSSO token** stored in the ``npsso`` cookie of
    ``my.playstation.com``; :meth:`connect` trades it for an authorization
    code and then for access / refresh tokens.

    Args:
        timeout: HTTP request timeout in seconds.
    """

    _AUTHORIZE_URL = "https://ca.account.sony.com/api/authz/v3/oauth/authorize"
    _TOKEN_URL     = "https://ca.account.sony.com/api/authz/v3/oauth/token"
    _TITLES_URL    = "https://m.np.playstation.com/api/gamelist/v2/users/me/titles"
    _REDIRECT_URI  = "com.scee.psxandroid.sceabroker://psxbroker"
    # Public client credentials shipped in the PlayStation Android app.
    _CLIENT_ID     = "09515159-7237-4370-9b40-3806e67c0891"
    _CLIENT_SECRET = "ucIBBpU6QUVYETxW"
    _SCOPE         = "psn:mobile.v2.core psn:clientapp"
    _PAGE_SIZE     = 100

    def __init__(self, timeout: int = 10) -> None:
        _OAuth2Mixin.__init__(self)
        self._timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({
            'User-Agent': 'PlayStation/21090100 CFNetwork/1126 Darwin/19.5.0'
        })

    def get_platform_name(self) -> str:
        return "psn"

    def connect(self, npsso: str) -> bool:
        """Exchange an NPSSO token for PSN access and refresh tokens.

        Returns:
            ``True`` on success, ``False`` on any HTTP error or when Sony does
            not hand back an authorization code (expired NPSSO).
        """
        params = {
            'access_type':   'offline',
            'client_id':     self._CLIENT_ID,
            'redirect_uri':  self._REDIRECT_URI,
            'response_type': 'code',
            'scope':         self._SCOPE,
        }
        auth_code_url = f"{self._AUTHORIZE_URL}?{urllib.parse.urlencode(params)}"
        try:
            resp = self._session.get(
                auth_code_url,
                headers={'Cookie': f'npsso={npsso}'},
                allow_redirects=False,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.warning("PSN: NPSSO -> auth code failed: %s", exc)
            return False

        location = resp.headers.get('Location', '')
        codes = urllib.parse.parse_qs(urllib.parse.urlparse(location).query).get('code', [])
        if not codes:
            logger.warning("PSN: NPSSO exchange did not return an auth code. "
                           "Token may be expired or invalid.")
            return False

        data = {
            'code':         codes[0],
            'grant_type':   'authorization_code',
            'redirect_uri': self._REDIRECT_URI,
            'token_format': 'jwt',
        }
        return self._request_tokens(data, 'token exchange')

    def refresh_tokens(self) -> bool:
        """Refresh the access token with the stored refresh token."""
        if not self._refresh_token:
            return False
        data = {
            'grant_type':    'refresh_token',
            'refresh_token': self._refresh_token,
            'token_format':  'jwt',
            'scope':         self._SCOPE,
        }
        return self._request_tokens(data, 'token refresh')

    def _request_tokens(self, data: Dict[str, str], action: str) -> bool:
        try:
            resp = self._session.post(
                self._TOKEN_URL,
                data=data,
                auth=(self._CLIENT_ID, self._CLIENT_SECRET),
                timeout=self._timeout,
            )
            resp.raise_for_status()
            self._store_tokens(resp.json())
            return True
        except (requests.RequestException, ValueError) as exc:
            logger.warning("PSN: %s failed: %s", action, exc)
            return False

    def get_owned_games(self, user_id: str = '') -> List[Dict[str, Any]]:
        """Fetch the authenticated user's PlayStation titles.

        Follows ``offset`` pagination until ``totalItemCount`` is reached.

        Args:
            user_id: Ignored; identity comes from the access token.

        Returns:
            Dicts with ``name``, ``psn_id`` (title id), ``psn_platform``
            (``PS4`` / ``PS5`` / ``PC`` or ``''``), ``category`` and ``image``.
            Empty when not authenticated.
        """
        if not self.is_authenticated:
            logger.info("PSN: not authenticated, call connect(npsso) first")
            return []
        if self._is_token_expired():
            self.refresh_tokens()

        games: List[Dict[str, Any]] = []
        offset = 0
        while True:
            try:
                resp = self._session.get(
                    self._TITLES_URL,
                    params={
                        'categories': ','.join(PSN_CATEGORY_PLATFORMS),
                        'limit':      self._PAGE_SIZE,
                        'offset':     offset,
                    },
                    headers=self._auth_header(),
                    timeout=self._timeout,
                )
                resp.raise_for_status()
                body = resp.json()
            except (requests.RequestException, ValueError) as exc:
                logger.warning("PSN get_owned_games failed at offset %d: %s", offset, exc)
                break

            titles = body.get('titles', [])
            for title in titles:
                title_id = title.get('titleId', '')
                category = title.get('category', '')
                games.append({
                    'name':         title.get('name', title_id),
                    'psn_id':       title_id,
                    'psn_platform': PSN_CATEGORY_PLATFORMS.get(category, ''),
                    'category':     category,
                    'image':        _extract_title_image(title),
                })

            total = body.get('totalItemCount', len(titles))
            offset += len(titles)
            if offset >= total or not titles:
                break

        return games


class PSNSearchClient:
    """PSN SearchGame store endpoint used as a publisher / release-date source.

    Endpoint layout::

        /store/api/chihiro/00_09_000/tumbler/{country}/{language}/{age}/{query}
    """

    BASE_URL = "https://store.playstation.com/store/api/chihiro/00_09_000/tumbler"

    def __init__(self, timeout: float = 5) -> None:
        self.timeout = timeout
        self.session = requests.Session()

    def search_game(self, query: str, country: str, language: str,
                    age_group: Any) -> Dict[str, Any]:
        """Run one search and return the decoded JSON document.

        Args:
            query:     Already-sanitized search string.
            country:   ISO country code, e.g. ``US``.
            language:  ISO language code, e.g. ``en``.
            age_group: ``5`` (under 18) or ``19`` (adult).

        Raises:
            ProviderUnavailable: Timeout, transport error, non-2xx or bad JSON.
        """
        url = "/".join([
            self.BASE_URL, country, language, str(age_group),
            urllib.parse.quote(query, safe=''),
        ])
        headers = {
            'User-Agent': 'Gameo/1.0 (PSN API Client)',
            'Accept': 'application/json',
        }
        try:
            response = self.session.get(url, headers=headers, timeout=self.timeout)
        except requests.Timeout as e:
            raise ProviderUnavailable(f"PSN SearchGame timeout for {query!r}") from e
        except requests.RequestException as e:
            raise ProviderUnavailable(f"PSN SearchGame error for {query!r}: {e}") from e

        if response.status_code == 429:
            logger.warning("PSN SearchGame API rate limited for game: %s", query)
        if not response.ok:
            raise ProviderUnavailable(
                f"PSN SearchGame returned {response.status_code} for {query!r}"
            )
        try:
            return response.json() or {}
        except ValueError as e:
            raise ProviderUnavailable(f"PSN SearchGame returned invalid JSON for {query!r}") from e
