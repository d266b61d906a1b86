"""
TouchGrass event ingestion core.

Normalizes listings from heterogeneous sources into one canonical event
schema, stores each logical event exactly once under a deterministic id,
and projects stored records into a search index.
"""

__version__ = "0.1.0"
