"""
Shared route dependencies.
"""

from fastapi import HTTPException, Request

from autoflow.runtime import AutomationRuntime


def get_runtime(request: Request) -> AutomationRuntime:
    """The runtime created by the application lifespan."""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Automation runtime is not running")
    return runtime
