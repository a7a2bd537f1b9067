"""Services package: expose all concrete services from one import."""
from .cache_service import TTLCacheService
from .enrichment_service import EnrichmentService, apply_enrichment, needs_enrichment
from .identity_service import IdentityResolver
from .merge_service import compute_merge, merge_platform_tags
from .catalog_service import CatalogService
from .library_service import LibraryService
from .sync_service import SyncReport, SyncService

__all__ = [
    'TTLCacheService',
    'EnrichmentService',
    'apply_enrichment',
    'needs_enrichment',
    'IdentityResolver',
    'compute_merge',
    'merge_platform_tags',
    'CatalogService',
    'LibraryService',
    'SyncReport',
    'SyncService',
]
