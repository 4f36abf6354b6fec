"""Application layer: workflows composed from domain and infrastructure."""
