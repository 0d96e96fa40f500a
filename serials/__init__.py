"""Serials core package.

Modules:
- identity: chapter keys and fingerprints
- diff: classify stored vs. fetched chapters
- reconciler: next chapter list and Scan record from a diff
- orchestrator: per-source scan lifecycle
- fetcher: remote listing fetchers (HTML table of contents / chapter menu)
- store, repository, models, database: SQLite persistence
- api: FastAPI app
- config: INI parsing and config object
"""
