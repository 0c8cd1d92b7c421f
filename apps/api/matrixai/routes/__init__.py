"""Route modules."""

from .audio import router as audio_router
from .balance import router as balance_router
from .videos import router as videos_router

__all__ = ["audio_router", "balance_router", "videos_router"]
