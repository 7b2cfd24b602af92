"""HTTP request layer (FastAPI) for the clinic back-office."""

from .app import create_app

__all__ = ["create_app"]
