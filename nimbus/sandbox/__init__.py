"""In-memory FastAPI backend for local development and integration tests."""
