"""
Vercel serverless function entry point for the Sentinel FastAPI application.

The ASGI app is exposed directly for the Vercel Python runtime.
"""

from sentinel.main import app

# Vercel Python runtime looks for this handler
handler = app

__all__ = ["app", "handler"]
