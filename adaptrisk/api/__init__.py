"""AdaptRisk HTTP API (FastAPI)."""
