"""
Gameo library-sync application package.

Layered architecture:

  app/normalization.py  shared candidate / tag / date normalization helpers.
  app/services/         business logic for identity resolution, merging,
                         enrichment, catalog lookups, library edits and sync.

Persistence lives in the top-level ``database`` module and HTTP clients in
``platform_clients``.  ``Gameo`` (in ``gameo.py``) is the integration point:
it builds clients, caches and services once from the configuration and
exposes them as public attributes (e.g. ``gameo.library_service``).
"""
