"""
API package - FastAPI routes and schemas.
"""

from autoflow.api.routes import actions, automations, events, runs

__all__ = ["actions", "automations", "events", "runs"]
