"""Router exports for FastAPI composition."""

from . import books, health

__all__ = ["books", "health"]
