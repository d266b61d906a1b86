"""Settings and YAML configuration for the ingestion core."""
