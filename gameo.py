#!/usr/bin/env python3
"""
Gameo - game library sync
Merges games from manual entry, Steam and PlayStation Network into one
deduplicated library per user, filling publisher / release-date gaps from the
PlayStation Store.
"""

import json
import logging
import os
import sys
import argparse
from typing import Any, Dict, Optional

from colorama import init, Fore, Style
from dotenv import load_dotenv

# .env must be loaded before database reads DATABASE_URL
load_dotenv()

import database
from app.exceptions import GameoError
from app.services import (
    CatalogService, EnrichmentService, LibraryService, SyncService, TTLCacheService,
)
from app.services.cache_service import SEVEN_DAYS
from platform_clients import PSNClient, PSNSearchClient, SteamAPIClient, SteamStoreClient

# Initialize colorama for cross-platform colored terminal output
init(autoreset=True)

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(level: str = 'WARNING') -> logging.Logger:
    """Configure the root Gameo logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to WARNING so normal use is quiet.

    Returns:
        Configured logger instance.
    """
    numeric = getattr(logging, level.upper(), logging.WARNING)
    logger = logging.getLogger('gameo')
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(numeric)
    return logger


# Module-level logger used throughout gameo.py
logger = setup_logging(os.getenv('GAMEO_LOG_LEVEL', 'WARNING'))


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_CONFIG: Dict[str, Any] = {
    'steam_api_key': '',
    'psn_npsso': '',
    'log_level': 'WARNING',
    'request_timeout': 10,
    'enrichment_timeout': 5,
    'sync_workers': 10,
    'cache_max_entries': 10000,
    'country': 'US',
    'language': 'en',
    'age_group': 19,
}

# env var -> (config key, type)
_ENV_OVERRIDES = {
    'STEAM_API_KEY': ('steam_api_key', str),
    'PSN_NPSSO': ('psn_npsso', str),
    'GAMEO_LOG_LEVEL': ('log_level', str),
    'GAMEO_SYNC_WORKERS': ('sync_workers', int),
    'GAMEO_COUNTRY': ('country', str),
    'GAMEO_LANGUAGE': ('language', str),
    'GAMEO_AGE_GROUP': ('age_group', int),
}


def is_placeholder_value(value: Any) -> bool:
    """Check if a value is an unset or ``YOUR_...`` template credential."""
    if not value or not isinstance(value, str):
        return True
    return value.startswith('YOUR_')


def load_config(config_path: str = 'config.json') -> Dict[str, Any]:
    """Load configuration from a JSON file with environment variable support.

    A missing file yields the defaults.  Environment variables take
    precedence over file values:

    - STEAM_API_KEY overrides steam_api_key
    - PSN_NPSSO overrides psn_npsso
    - GAMEO_LOG_LEVEL overrides log_level
    - GAMEO_SYNC_WORKERS overrides sync_workers
    - GAMEO_COUNTRY / GAMEO_LANGUAGE / GAMEO_AGE_GROUP override the
      enrichment locale

    DATABASE_URL is not part of this dict: ``database`` reads it at import
    time, after ``.env`` has been loaded.

    Raises:
        ValueError: The file exists but is not a JSON object, or an
            environment override has the wrong type.
    """
    config = dict(DEFAULT_CONFIG)
    if os.path.exists(config_path):
        with open(config_path, 'r') as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"Error parsing config file {config_path}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Config file {config_path} must contain a JSON object")
        config.update(data)
    else:
        logger.info("Config file %s not found, using defaults", config_path)

    for env_name, (key, cast) in _ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw:
            try:
                config[key] = cast(raw)
            except ValueError as e:
                raise ValueError(f"Invalid value for {env_name}: {raw!r}") from e

    for key in ('steam_api_key', 'psn_npsso'):
        if is_placeholder_value(config.get(key)):
            config[key] = ''
    return config


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------

class Gameo:
    """Builds clients, caches and services once from *config*.

    The caches are process-wide objects owned by this instance and injected
    into the services that use them.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, db_module=database) -> None:
        self.config = dict(DEFAULT_CONFIG)
        self.config.update(config or {})
        self._log = logging.getLogger('gameo.app')

        timeout = self.config['request_timeout']
        max_entries = self.config['cache_max_entries']
        self.steam_cache = TTLCacheService(SEVEN_DAYS, max_entries, name='steam')
        self.psn_search_cache = TTLCacheService(SEVEN_DAYS, max_entries, name='psnsearch')

        self.store_client = SteamStoreClient(timeout=timeout)
        self.search_client = PSNSearchClient(timeout=self.config['enrichment_timeout'])
        self.steam_client = (SteamAPIClient(self.config['steam_api_key'], timeout=timeout)
                             if self.config['steam_api_key'] else None)
        self.psn_client = PSNClient(timeout=timeout)

        self.catalog_service = CatalogService(self.store_client, self.steam_cache,
                                              max_workers=self.config['sync_workers'])
        self.enrichment_service = EnrichmentService(
            self.search_client, self.psn_search_cache,
            default_country=self.config['country'],
            default_language=self.config['language'],
            default_age_group=self.config['age_group'],
        )
        self.library_service = LibraryService(db_module, enrichment=self.enrichment_service)
        self.sync_service = SyncService(db_module, self.library_service,
                                        steam_client=self.steam_client,
                                        psn_client=self.psn_client,
                                        catalog=self.catalog_service)

    def connect_psn(self) -> bool:
        """Authenticate the PSN client with the configured NPSSO token."""
        npsso = self.config.get('psn_npsso')
        if not npsso:
            self._log.info("No PSN NPSSO token configured")
            return False
        return self.psn_client.connect(npsso)


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------

def _print_game(game: Dict[str, Any]) -> None:
    print(f"{Fore.CYAN}{Style.BRIGHT}{game['name']}")
    print(f"  {Fore.YELLOW}Studio: {Fore.WHITE}{game['studio']}")
    if game['release_date']:
        print(f"  {Fore.YELLOW}Released: {Fore.WHITE}{game['release_date']}")
    if game['steam_app_id']:
        print(f"  {Fore.YELLOW}Steam: {Fore.WHITE}{game['steam_app_id']}")
    if game['psn_id']:
        print(f"  {Fore.YELLOW}PSN: {Fore.WHITE}{game['psn_id']} {game['platform_tags']}")


def _print_report(report) -> None:
    summary = report.to_dict()
    print(f"{Fore.GREEN}Added {summary['added']}, merged {summary['merged']}, "
          f"skipped {summary['skipped']}, failed {summary['failed']} "
          f"({summary['source']})")
    for entry in summary['log']:
        if entry['status'] == 'failed':
            print(f"{Fore.RED}  failed: {entry['name']}")


def _cmd_enrich(gameo: Gameo, args, db) -> int:
    result = gameo.enrichment_service.enrich_game(args.name, args.country, args.language, args.age)
    print(f"{Fore.YELLOW}Publisher: {Fore.WHITE}{result['publisher'] or '-'}")
    print(f"{Fore.YELLOW}Release date: {Fore.WHITE}{result['release_date'] or '-'}")
    return 0


def _cmd_search(gameo: Gameo, args, db) -> int:
    results = gameo.catalog_service.search(args.term)
    print(f"{Fore.GREEN}{results['total']} result(s){' (cached)' if results['cached'] else ''}")
    for item in results['items']:
        print(f"  {Fore.YELLOW}{item.get('id')}: {Fore.WHITE}{item.get('name')}")
    return 0


def _cmd_sync_steam(gameo: Gameo, args, db) -> int:
    print(f"{Fore.CYAN}Syncing Steam library {args.steam_id} for {args.owner}...")
    report = gameo.sync_service.sync_steam_library(
        db, args.owner, args.steam_id, fetch_details=not args.no_details, enrich=args.enrich)
    _print_report(report)
    return 0


def _cmd_sync_psn(gameo: Gameo, args, db) -> int:
    if not gameo.connect_psn():
        print(f"{Fore.RED}Could not connect to PlayStation Network. Check psn_npsso / PSN_NPSSO.")
        return 1
    print(f"{Fore.CYAN}Syncing PlayStation library for {args.owner}...")
    report = gameo.sync_service.sync_psn_library(db, args.owner, enrich=not args.no_enrich)
    _print_report(report)
    return 0


def _cmd_list(gameo: Gameo, args, db) -> int:
    if args.name:
        games = gameo.library_service.find_games_by_name(db, args.owner, args.name)
    else:
        games = gameo.library_service.list_games(db, args.owner)
    if not games:
        print(f"{Fore.YELLOW}No games found.")
        return 0
    for game in games:
        _print_game(game.to_dict())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Gameo - game library sync',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  gameo enrich "Baldur's Gate 3"          # Look up publisher and release date
  gameo search portal                      # Search the Steam store
  gameo sync-steam alice 76561198000000001 # Import a Steam library
  gameo sync-psn alice                     # Import the PSN library (needs PSN_NPSSO)
  gameo list alice                         # Show a library
        """
    )
    parser.add_argument('--config', '-c', default='config.json',
                        help='Path to config file (default: config.json)')
    parser.add_argument('--log-level', help='Override log level (DEBUG, INFO, ...)')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('enrich', help='Look up publisher / release date for a game name')
    p.add_argument('name')
    p.add_argument('--country')
    p.add_argument('--language')
    p.add_argument('--age', type=int)
    p.set_defaults(func=_cmd_enrich, needs_db=False)

    p = sub.add_parser('search', help='Search the Steam store catalog')
    p.add_argument('term')
    p.set_defaults(func=_cmd_search, needs_db=False)

    p = sub.add_parser('sync-steam', help='Import a Steam library')
    p.add_argument('owner')
    p.add_argument('steam_id')
    p.add_argument('--no-details', action='store_true',
                   help='Skip store detail lookups (studio, release date)')
    p.add_argument('--enrich', action='store_true',
                   help='Fill missing metadata from the PlayStation Store')
    p.set_defaults(func=_cmd_sync_steam, needs_db=True)

    p = sub.add_parser('sync-psn', help='Import the connected PSN library')
    p.add_argument('owner')
    p.add_argument('--no-enrich', action='store_true',
                   help='Do not look up publisher / release date')
    p.set_defaults(func=_cmd_sync_psn, needs_db=True)

    p = sub.add_parser('list', help='List a library')
    p.add_argument('owner')
    p.add_argument('--name', help='Only games with this name (case-insensitive)')
    p.set_defaults(func=_cmd_list, needs_db=True)
    return parser


def main(argv=None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as e:
        print(f"{Fore.RED}Error: {e}")
        return 1
    setup_logging(args.log_level or config['log_level'])

    gameo = Gameo(config)
    db = None
    if args.needs_db:
        if not database.init_db():
            print(f"{Fore.RED}Error: Cannot connect to database")
            print(f"{Fore.YELLOW}Make sure PostgreSQL is running and DATABASE_URL is set correctly")
            return 1
        db = database.SessionLocal()
    try:
        return args.func(gameo, args, db)
    except GameoError as e:
        print(f"{Fore.RED}Error: {e}")
        return 1
    finally:
        if db is not None:
            db.close()


if __name__ == '__main__':
    sys.exit(main())
