#!/usr/bin/env python3
"""
Run the SwoleGen stub backend

Usage:
    python run_stub_backend.py

Or with uvicorn directly:
    uvicorn stub_backend:app --reload --port 8080
"""

import logging
import os

import uvicorn


def main():
    """Run the FastAPI stub backend"""
    port = int(os.environ.get("PORT", "8080"))
    host = os.environ.get("HOST", "127.0.0.1")
    reload = os.environ.get("RELOAD", "true").lower() == "true"
    log_level = os.environ.get("LOG_LEVEL", "info").lower()

    logging.basicConfig(level=log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger(__name__).info("Starting stub backend on http://%s:%s (reload=%s)", host, port, reload)

    uvicorn.run(
        "stub_backend:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


if __name__ == "__main__":
    main()
