"""docgate FastAPI application."""

from .main import create_app
from .settings import DocGateSettings

__all__ = ["create_app", "DocGateSettings"]
