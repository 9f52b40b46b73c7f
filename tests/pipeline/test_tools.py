import asyncio
from unittest.mock import Mock

import pytest

from studyflow.models.providers.base import ToolCall
from studyflow.pipeline.schema import number, schema, string
from studyflow.pipeline.tools import NO_RESULTS, ToolDefinition, ToolInvoker, canned_search, make_search_tool


def run(coro):
    return asyncio.run(coro)


class TestSearchTool:
    @pytest.mark.parametrize("query, expected", [
        ("What is the WEATHER today?", "The weather is sunny, 25°C."),
        ("latest news", "The top news is that AI is transforming the world."),
        ("capital of France", NO_RESULTS),
    ])
    def test_canned_search(self, query, expected):
        assert canned_search(query) == expected

    def test_spec_advertises_input_schema(self):
        spec = make_search_tool().spec()
        assert spec.name == "search"
        assert spec.parameters["required"] == ["query"]

    def test_lookup_is_replaceable(self):
        lookup = Mock(return_value="live result")
        invoker = ToolInvoker([make_search_tool(lookup)])

        result = run(invoker.invoke(ToolCall(id="1", name="search", arguments={"query": "anything"})))

        assert result.success
        assert result.observation == "live result"
        lookup.assert_called_once_with("anything")


class TestToolInvoker:
    @pytest.fixture
    def add_tool(self):
        fn = Mock(side_effect=lambda args: str(args["a"] + args["b"]))
        return ToolDefinition(
            name="add",
            description="Add two numbers",
            input_schema=schema(number("a"), number("b")),
            fn=fn,
        )

    def test_invokes_once_with_validated_arguments(self, add_tool):
        invoker = ToolInvoker([add_tool])
        result = run(invoker.invoke(ToolCall(id="c1", name="add", arguments={"a": 2, "b": 3, "junk": True})))

        assert result.success
        assert result.output == "5"
        add_tool.fn.assert_called_once_with({"a": 2, "b": 3})

    def test_async_implementation(self):
        async def lookup(args):
            await asyncio.sleep(0)
            return f"found {args['query']}"

        tool = ToolDefinition("lookup", "Async lookup", schema(string("query")), lookup)
        result = run(ToolInvoker([tool]).invoke(ToolCall(id="c1", name="lookup", arguments={"query": "x"})))
        assert result.output == "found x"

    def test_invalid_arguments_become_observation(self, add_tool):
        invoker = ToolInvoker([add_tool])
        result = run(invoker.invoke(ToolCall(id="c1", name="add", arguments={"a": "two"})))

        assert not result.success
        assert result.error_kind == "ToolArgumentError"
        assert result.observation.startswith("Error: Invalid arguments for tool 'add'")
        add_tool.fn.assert_not_called()

    def test_undecodable_arguments(self, add_tool):
        # providers pass the raw string through when the model sends broken json
        result = run(ToolInvoker([add_tool]).invoke(ToolCall(id="c1", name="add", arguments="{a: 1")))
        assert result.error_kind == "ToolArgumentError"

    def test_unknown_tool(self, add_tool):
        result = run(ToolInvoker([add_tool]).invoke(ToolCall(id="c1", name="delete_everything", arguments={})))
        assert not result.success
        assert "Unknown tool" in result.observation

    def test_implementation_failure_becomes_observation(self):
        tool = ToolDefinition("boom", "Always fails", schema(), Mock(side_effect=RuntimeError("backend down")))
        result = run(ToolInvoker([tool]).invoke(ToolCall(id="c1", name="boom", arguments={})))
        assert not result.success
        assert "backend down" in result.observation

    def test_non_string_output_rejected(self):
        tool = ToolDefinition("count", "Returns a number", schema(), Mock(return_value=3))
        result = run(ToolInvoker([tool]).invoke(ToolCall(id="c1", name="count", arguments={})))
        assert not result.success
        assert "expected string" in result.observation
