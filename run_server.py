#!/usr/bin/env python3
"""
Server startup script for Sentinel.

Loads .env when present and starts the FastAPI server.
"""

import os

from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env"))

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "sentinel.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", 8000)),
        reload=os.getenv("DEBUG", "false").lower() == "true",
    )
