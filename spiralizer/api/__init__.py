"""HTTP API for spiral generation and export."""
