"""Service-layer components behind the API routes."""
