#!/usr/bin/env python3
"""
Server startup script for Ghostli Billing.

Loads a local .env file, if any, and starts the FastAPI server.
"""

import os

from dotenv import load_dotenv

# Set environment variables from .env if it exists
load_dotenv(os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env"))

if __name__ == "__main__":
    import uvicorn

    from src.core.config import settings

    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
