"""HTTP service boundary (FastAPI)."""
