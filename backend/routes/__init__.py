"""
API route handlers
"""
from .chat import router as chat_router

__all__ = ["chat_router"]
