"""
HTTP API for draft versioning.

A thin FastAPI layer over DraftVersioningService. Run it with:
    python -m draftvc.main
"""

from .app import create_app
from .config import Settings

__all__ = ["create_app", "Settings"]
