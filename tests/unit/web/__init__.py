"""Unit tests for FRC web routes.

Routes are tested through FastAPI's TestClient with the database session
and the FRC service mocked.
"""
