"""
Generic flow endpoints.

Any registered flow can be run by name with its raw JSON input. The flow's
own schemas do the validation; this layer only maps results onto HTTP.
"""
import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse

from ..models.common import APIError
from ..models.flows import FlowInfo, FlowResponse
from ..dependencies.services import get_executor, get_flows
from studyflow.pipeline.executor import FlowDefinition, FlowExecutor, FlowResult

logger = logging.getLogger(__name__)

router = APIRouter()

GENERIC_FAILURE = "The AI service could not complete the request. Please try again."
INPUT_ERRORS = {"SchemaViolation": 422, "UnsupportedMediaError": 422}
UNAVAILABLE = {"ModelUnavailable": 503}


def to_response(result: FlowResult) -> JSONResponse:
    """Map a FlowResult onto the response envelope and an HTTP status."""
    processing_time = result.meta.get("latency")
    if result.ok:
        body = FlowResponse(
            success=True,
            message=f"Flow '{result.flow}' completed successfully",
            flow=result.flow,
            data=result.value,
            processing_time=processing_time,
        )
        return JSONResponse(status_code=200, content=body.model_dump(mode="json"))

    kind = result.error_kind
    logger.error(f"Flow '{result.flow}' failed with {kind}: {result.error.message}")
    if kind in INPUT_ERRORS:
        status, message = INPUT_ERRORS[kind], result.error.message
    else:
        status, message = UNAVAILABLE.get(kind, 502), GENERIC_FAILURE

    body = FlowResponse(
        success=False,
        message=message,
        flow=result.flow,
        error=APIError(
            error=message,
            error_code=kind,
            details=result.error.to_dict() if kind in INPUT_ERRORS else None,
        ),
        processing_time=processing_time,
    )
    return JSONResponse(status_code=status, content=body.model_dump(mode="json"))


@router.get("/", response_model=List[FlowInfo])
async def list_flows(flows: Dict[str, FlowDefinition] = Depends(get_flows)):
    """List every registered flow with its input and output schemas."""
    return [
        FlowInfo(
            name=flow.name,
            task=flow.task,
            input_schema=flow.input_schema.to_json_schema(),
            output_schema=flow.output_schema.to_json_schema(),
            tools=[tool.name for tool in flow.tools],
        )
        for flow in flows.values()
    ]


@router.post("/{name}", response_model=FlowResponse)
async def run_flow(
    name: str,
    payload: Any = Body(...),
    executor: FlowExecutor = Depends(get_executor),
    flows: Dict[str, FlowDefinition] = Depends(get_flows),
):
    """Run the named flow against the request body."""
    flow = flows.get(name)
    if flow is None:
        raise HTTPException(status_code=404, detail=f"Unknown flow: {name}")
    result = await executor.run(flow, payload)
    return to_response(result)
