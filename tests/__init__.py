"""SearchStream test suite.

- tests/unit/: components in isolation (no database, no Redis)
- tests/api/: HTTP and WebSocket endpoints through FastAPI's TestClient
- tests/conftest.py: environment defaults and shared fixtures
"""
