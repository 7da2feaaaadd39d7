"""HTTP API for the charge engine."""
