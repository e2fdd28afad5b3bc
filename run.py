#!/usr/bin/env python3
"""
Simple run script for the Automation Engine.

Usage:
    python run.py

Or with custom settings:
    HOST=127.0.0.1 PORT=8080 DATABASE_PATH=data/autoflow.db python run.py
"""

import uvicorn

from autoflow.config import settings


def main():
    """Run the FastAPI application."""
    host = settings.HOST
    port = settings.PORT
    storage = settings.DATABASE_PATH or "in-memory"

    print(f"""
╔═══════════════════════════════════════════════════════════════╗
║                      Autoflow                                 ║
║                                                               ║
║  Event-driven marketing automations                           ║
╠═══════════════════════════════════════════════════════════════╣
║  Server:    http://{host}:{port}
║  API Docs:  http://{host}:{port}/docs
║  Storage:   {storage}
╠═══════════════════════════════════════════════════════════════╣
║  Demo automation ID: lead-routing-demo                        ║
╚═══════════════════════════════════════════════════════════════╝
    """)

    uvicorn.run(
        "autoflow.main:app",
        host=host,
        port=port,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
