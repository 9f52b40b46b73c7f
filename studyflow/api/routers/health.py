"""
Health check endpoints for monitoring and diagnostics.
"""

import time
from typing import Dict

from fastapi import APIRouter, Depends

from ..models.common import HealthStatus
from ..dependencies.services import get_model_manager, get_flows
from studyflow import __version__
from studyflow.models.manager import ModelManager
from studyflow.pipeline.executor import FlowDefinition

router = APIRouter()

# Track server start time for uptime calculation
_server_start_time = time.time()

@router.get("/", response_model=HealthStatus)
async def health_check(
    model_manager: ModelManager = Depends(get_model_manager),
    flows: Dict[str, FlowDefinition] = Depends(get_flows),
):
    """
    Basic health check endpoint.

    Reports configured providers and registered flows without calling any model.
    """
    dependencies = {
        "providers": ", ".join(model_manager.config["providers"]) or "none",
        "flows": f"{len(flows)} registered",
    }
    for task, stats in model_manager.get_stats().items():
        dependencies[f"task:{task}"] = f"{stats['successful_calls']}/{stats['total_calls']} calls succeeded"

    return HealthStatus(
        status="healthy",
        version=__version__,
        uptime=time.time() - _server_start_time,
        dependencies=dependencies,
    )

@router.get("/ready")
async def readiness_check(model_manager: ModelManager = Depends(get_model_manager)):
    """
    Readiness check for container deployments.

    Pings every configured provider; ready only when all of them answer.
    """
    providers = await model_manager.health()
    unavailable = [name for name, ok in providers.items() if not ok]
    if unavailable:
        return {"ready": False, "reason": f"Providers unavailable: {', '.join(unavailable)}", "providers": providers}
    return {"ready": True, "message": "Service ready to handle requests", "providers": providers}
