"""HTTP API for MV Studio."""
