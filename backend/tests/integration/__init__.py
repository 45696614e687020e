"""Integration tests - HTTP API through FastAPI's TestClient"""
