"""
Accessors for the process-wide services created at startup.

Nothing request-specific is kept here: conversation history travels with each
request, so the server holds no per-user state between calls.
"""

from typing import Dict

from fastapi import HTTPException

from studyflow.models.manager import ModelManager
from studyflow.pipeline.executor import FlowDefinition, FlowExecutor


def _state(key: str):
    from ..main import app_state
    if key not in app_state:
        raise HTTPException(status_code=503, detail="Service is still starting up")
    return app_state[key]


def get_model_manager() -> ModelManager:
    """FastAPI dependency to get the model manager from app state."""
    return _state("model_manager")


def get_executor() -> FlowExecutor:
    return _state("executor")


def get_flows() -> Dict[str, FlowDefinition]:
    return _state("flows")
