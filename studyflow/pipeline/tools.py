"""
Model-invocable tools.

A ToolDefinition pairs a declared input schema with an implementation. The
ToolInvoker runs whatever tool calls the model asks for, validating arguments
first, and turns every outcome into an observation string for the follow-up
generation pass. Failures become observations too; they never abort the flow.
"""
from __future__ import annotations
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Union

from ..models.providers.base import ToolCall, ToolSpec
from .errors import SchemaViolation, ToolArgumentError
from .schema import FieldSpec, Schema, schema, string, validate, validate_value

logger = logging.getLogger(__name__)

ToolFn = Callable[[Dict[str, Any]], Union[str, Awaitable[str]]]


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    input_schema: Schema
    fn: ToolFn
    output: FieldSpec = string("result")

    def spec(self) -> ToolSpec:
        return ToolSpec(name=self.name, description=self.description, parameters=self.input_schema.to_json_schema())


@dataclass(frozen=True)
class ToolResult:
    call: ToolCall
    success: bool
    output: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None

    @property
    def observation(self) -> str:
        if self.success:
            return self.output
        return f"Error: {self.error}"


class ToolInvoker:
    def __init__(self, tools: Iterable[ToolDefinition]):
        self.tools = {tool.name: tool for tool in tools}

    async def invoke(self, call: ToolCall) -> ToolResult:
        tool = self.tools.get(call.name)
        if tool is None:
            logger.warning(f"Model requested undeclared tool '{call.name}'")
            return ToolResult(call=call, success=False, error=f"Unknown tool '{call.name}'", error_kind=ToolArgumentError.kind)

        try:
            arguments = validate(tool.input_schema, call.arguments)
        except SchemaViolation as e:
            err = ToolArgumentError(tool.name, e.message)
            logger.warning(f"{err.kind}: {err.message}")
            return ToolResult(call=call, success=False, error=err.message, error_kind=err.kind)

        logger.info(f"Invoking tool '{tool.name}' with {arguments}")
        try:
            output = tool.fn(arguments)
            if inspect.isawaitable(output):
                output = await output
            output = validate_value(tool.output, output, path=f"{tool.name}.{tool.output.name}")
        except Exception as e:
            logger.exception(f"Tool '{tool.name}' failed")
            return ToolResult(call=call, success=False, error=f"Tool '{tool.name}' failed: {e}")

        return ToolResult(call=call, success=True, output=output)


# Canned lookups until a real search backend is wired in
CANNED_SEARCH_RESULTS = {
    "weather": "The weather is sunny, 25°C.",
    "news": "The top news is that AI is transforming the world.",
}
NO_RESULTS = "No information found."


def canned_search(query: str) -> str:
    lowered = query.lower()
    for keyword, answer in CANNED_SEARCH_RESULTS.items():
        if keyword in lowered:
            return answer
    return NO_RESULTS


def make_search_tool(lookup: Callable[[str], Union[str, Awaitable[str]]] = canned_search) -> ToolDefinition:
    def run(arguments: Dict[str, Any]):
        logger.info(f"Searching for: {arguments['query']}")
        return lookup(arguments["query"])

    return ToolDefinition(
        name="search",
        description="Search for information on the web.",
        input_schema=schema(string("query", description="What to search for.")),
        fn=run,
    )
