"""
Flow execution.

A flow run walks a fixed sequence of states:

    idle -> validating -> rendering -> generating -> validating_output -> succeeded
                                                                      \\-> failed

Any error jumps straight to `failed`; nothing is retried here. The generating
step may take one tool round trip when the model asks for a declared tool.
"""
from __future__ import annotations
import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from ..models.manager import ModelManager
from ..models.prompts import PromptConfig, RenderedMessage
from ..models.providers.base import ModelError, ModelResponse, ToolExchange
from .errors import FlowError, ModelUnavailable, OutputSchemaViolation, UnsupportedMediaError
from .media import parse as parse_media
from .schema import Kind, Schema, validate
from .tools import ToolDefinition, ToolInvoker

logger = logging.getLogger(__name__)

Check = Callable[[Mapping[str, Any], Mapping[str, Any]], None]
InputCheck = Callable[[Mapping[str, Any]], None]

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class FlowState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    RENDERING = "rendering"
    GENERATING = "generating"
    VALIDATING_OUTPUT = "validating_output"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class FlowDefinition:
    name: str
    task: str #config task that picks provider and model
    input_schema: Schema
    output_schema: Schema
    prompt: PromptConfig
    tools: Tuple[ToolDefinition, ...] = ()
    response_modalities: Tuple[str, ...] = ("text",)
    structured_output: bool = True #ask the provider for json matching output_schema
    input_checks: Tuple[InputCheck, ...] = ()
    checks: Tuple[Check, ...] = ()


@dataclass(frozen=True)
class FlowResult:
    flow: str
    state: FlowState
    value: Optional[Dict[str, Any]] = None
    error: Optional[FlowError] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.state == FlowState.SUCCEEDED

    @property
    def error_kind(self) -> Optional[str]:
        return self.error.kind if self.error else None

    def unwrap(self) -> Dict[str, Any]:
        if self.error is not None:
            raise self.error
        return self.value


class _Run:
    def __init__(self, flow: str):
        self.flow = flow
        self.state = FlowState.IDLE
        self.started = time.perf_counter()
        self.meta: Dict[str, Any] = {"transitions": [FlowState.IDLE.value]}

    def enter(self, state: FlowState):
        logger.debug(f"[{self.flow}] {self.state.value} -> {state.value}")
        self.state = state
        self.meta["transitions"].append(state.value)

    def finish(self, value: Optional[Dict[str, Any]] = None, error: Optional[FlowError] = None) -> FlowResult:
        failed_in = self.state.value
        self.enter(FlowState.FAILED if error else FlowState.SUCCEEDED)
        self.meta["latency"] = time.perf_counter() - self.started
        if error:
            self.meta["failed_in"] = failed_in
            logger.warning(f"Flow '{self.flow}' failed in {failed_in}: {error.kind}: {error.message}")
        else:
            logger.info(f"Flow '{self.flow}' succeeded in {self.meta['latency']:.2f}s")
        return FlowResult(flow=self.flow, state=self.state, value=value, error=error, meta=self.meta)


def bind_media(schema: Schema, validated: Mapping[str, Any]) -> Dict[str, Any]:
    """Swap media-ref strings for MediaReference objects so the renderer emits media segments."""
    bound = dict(validated)
    for spec in schema.media_fields:
        if spec.name in bound:
            bound[spec.name] = parse_media(bound[spec.name])
    return bound


def _strip_fences(text: str) -> str:
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text


def coerce_output(schema: Schema, response: ModelResponse) -> Dict[str, Any]:
    """
    Turn a model response into a payload for output validation.

    JSON objects pass through as-is. Plain text is accepted only when the
    schema is a single string field. Media the model generated fills media
    fields the payload leaves empty, in order.
    """
    content = response.content.strip()
    payload: Optional[Dict[str, Any]] = None

    if content:
        try:
            decoded = json.loads(_strip_fences(content))
        except json.JSONDecodeError:
            decoded = None
        if isinstance(decoded, dict):
            payload = dict(decoded)
        else:
            only = schema.fields[0] if len(schema) == 1 else None
            if only is not None and only.kind == Kind.STRING and not only.media:
                payload = {only.name: content}
            else:
                raise OutputSchemaViolation("$", Kind.OBJECT.value, "text",
                                            message="Model returned text where a JSON object was expected")
    if payload is None:
        payload = {}

    generated = iter(response.media)
    for spec in schema.media_fields:
        if payload.get(spec.name) is None:
            media = next(generated, None)
            if media is None:
                break
            payload[spec.name] = media.uri
    return payload


class FlowExecutor:
    def __init__(self, model_manager: ModelManager):
        self.models = model_manager

    async def run(self, flow: FlowDefinition, raw_input: Any, *, timeout: Optional[float] = None) -> FlowResult:
        run = _Run(flow.name)
        try:
            value = await self._execute(flow, raw_input, run, timeout)
        except FlowError as e:
            return run.finish(error=e)
        except asyncio.CancelledError:
            run.finish(error=ModelUnavailable(f"Flow '{flow.name}' was cancelled"))
            raise
        return run.finish(value=value)

    async def run_or_raise(self, flow: FlowDefinition, raw_input: Any, *, timeout: Optional[float] = None) -> Dict[str, Any]:
        result = await self.run(flow, raw_input, timeout=timeout)
        return result.unwrap()

    async def _execute(self, flow: FlowDefinition, raw_input: Any, run: _Run, timeout: Optional[float]) -> Dict[str, Any]:
        run.enter(FlowState.VALIDATING)
        validated = validate(flow.input_schema, raw_input)
        for check in flow.input_checks:
            check(validated)
        bound = bind_media(flow.input_schema, validated)

        run.enter(FlowState.RENDERING)
        message = self.models.prompts.render(flow.prompt, bound)

        run.enter(FlowState.GENERATING)
        try:
            response = await asyncio.wait_for(self._generate(flow, message, run), timeout)
        except asyncio.TimeoutError as e:
            raise ModelUnavailable(f"Model did not answer within {timeout}s") from e
        run.meta["model"] = response.meta

        run.enter(FlowState.VALIDATING_OUTPUT)
        payload = coerce_output(flow.output_schema, response)
        value = validate(flow.output_schema, payload, error_cls=OutputSchemaViolation)
        for spec in flow.output_schema.media_fields:
            if spec.name in value:
                try:
                    parse_media(value[spec.name])
                except UnsupportedMediaError as e:
                    raise OutputSchemaViolation(spec.name, "media reference", "malformed string", message=e.message) from e
        for check in flow.checks:
            check(validated, value)
        return value

    async def _generate(self, flow: FlowDefinition, message: RenderedMessage, run: _Run) -> ModelResponse:
        tools = tuple(tool.spec() for tool in flow.tools)
        response = await self._call_model(flow, message, tool_choice="auto" if tools else None)
        if not response.tool_calls:
            return response

        # one tool round trip per turn: run each requested call once, then ask again with tools off
        invoker = ToolInvoker(flow.tools)
        results = []
        for call in response.tool_calls:
            results.append(await invoker.invoke(call))
        run.meta["tool_calls"] = [
            {"name": r.call.name, "success": r.success, "error_kind": r.error_kind} for r in results
        ]

        exchange = ToolExchange(calls=response.tool_calls, observations=tuple(r.observation for r in results))
        follow_up = await self._call_model(flow, message, tool_choice="none", tool_exchange=exchange)
        if follow_up.tool_calls:
            raise OutputSchemaViolation("$", "final answer", "tool call",
                                        message="Model requested another tool call after the tool round trip")
        return follow_up

    async def _call_model(self, flow: FlowDefinition, message: RenderedMessage, *, tool_choice: Optional[str] = None, tool_exchange: Optional[ToolExchange] = None) -> ModelResponse:
        try:
            return await self.models.generate(
                flow.task,
                message,
                output_schema=flow.output_schema.to_json_schema() if flow.structured_output else None,
                tools=tuple(tool.spec() for tool in flow.tools),
                tool_choice=tool_choice,
                tool_exchange=tool_exchange,
                response_modalities=flow.response_modalities,
                **flow.prompt.params,
            )
        except ModelError as e:
            raise ModelUnavailable(f"Model call for '{flow.name}' failed: {e}") from e
