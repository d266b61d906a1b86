"""
Ingestion core for TouchGrass.

This package turns raw listings into stored, searchable canonical records.

Key Components:
- EventNormalizer: per-source field mapping and value coercion
- identity_for: deterministic record keys
- EventRepository: create-if-absent persistence over a KeyValueStore
- EventIndexer: overwrite-style projection into a SearchEngine
- IngestionOrchestrator: Normalize -> Persist -> Index for one batch
"""
