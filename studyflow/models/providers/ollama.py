from __future__ import annotations
from typing import Any, Dict, List, Optional
import logging
import time
import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential_jitter, retry_if_exception
from ollama import AsyncClient, ResponseError
from .base import ModelProvider, ChatRequest, ModelResponse, ModelError, ModelRetryable, ModelTimeout, TextSegment, MediaSegment, ToolCall
from ...pipeline.errors import UnsupportedMediaError
from ...utils.image_converter import to_base64

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {408, 409, 429, 500, 502, 503, 504}

def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.ReadTimeout, httpx.ConnectTimeout, httpx.ConnectError, httpx.RemoteProtocolError)):
        return True
    if isinstance(exc, ResponseError):
        return getattr(exc, "status_code", None) in RETRYABLE_STATUS
    return isinstance(exc, (ModelRetryable, ModelTimeout))

def _field(obj: Any, name: str, default: Any = None) -> Any:
    # The ollama client hands back either dicts or pydantic objects depending on version
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)

class OllamaProvider(ModelProvider):
    def __init__(self, host: str = "http://localhost:11434", request_timeout_s: float = 300, keep_alive: str = "5m", max_attempts: int = 1):
        self.client = AsyncClient(host=host, timeout=request_timeout_s)
        self.keep_alive = keep_alive
        self.host = host
        self.request_timeout_s = request_timeout_s
        self.max_attempts = max(1, int(max_attempts))

    def _process_messages(self, req: ChatRequest) -> List[Dict[str, Any]]:
        messages: List[Dict[str, Any]] = []
        if req.system:
            messages.append({"role": "system", "content": req.system})

        text_parts, images = [], []
        for segment in req.segments:
            if isinstance(segment, TextSegment):
                text_parts.append(segment.text)
            elif isinstance(segment, MediaSegment):
                if segment.media.category != "image":
                    raise UnsupportedMediaError(f"Ollama only accepts image media, got {segment.media.base_type}")
                try:
                    images.append(to_base64(segment.media))
                except ValueError as e:
                    raise UnsupportedMediaError(f"Ollama could not read {segment.media.base_type} image: {e}") from e
        user = {"role": "user", "content": "".join(text_parts)}
        if images:
            user["images"] = images
        messages.append(user)

        exchange = req.tool_exchange
        if exchange:
            messages.append({
                "role": "assistant",
                "content": "",
                "tool_calls": [{"function": {"name": c.name, "arguments": c.arguments}} for c in exchange.calls],
            })
            for call, observation in zip(exchange.calls, exchange.observations):
                messages.append({"role": "tool", "content": observation, "tool_name": call.name})
        return messages

    async def chat(self, req: ChatRequest) -> ModelResponse:
        if "image" in req.response_modalities:
            raise ModelError("Ollama provider cannot generate images")
        retrying = AsyncRetrying(
            reraise=True,
            wait=wait_exponential_jitter(initial=0.5, max=4),
            stop=stop_after_attempt(self.max_attempts),
            retry=retry_if_exception(_is_retryable),
        )
        async for attempt in retrying:
            with attempt:
                return await self._chat_once(req)

    async def _chat_once(self, req: ChatRequest) -> ModelResponse:
        options = dict(req.params or {})
        keep_alive = options.pop('keep_alive', self.keep_alive)

        custom_timeout = options.pop('timeout', self.request_timeout_s)

        kwargs: Dict[str, Any] = {
            "model": req.model,
            "messages": self._process_messages(req),
            "options": options,
            "keep_alive": keep_alive,
        }
        if req.output_schema is not None:
            kwargs["format"] = req.output_schema
        # Ollama has no tool_choice; leaving tools out is how tool use gets disabled
        if req.tools and req.tool_choice != "none":
            kwargs["tools"] = [
                {"type": "function", "function": {"name": t.name, "description": t.description, "parameters": t.parameters}}
                for t in req.tools
            ]

        client = AsyncClient(host=self.host, timeout=custom_timeout) if custom_timeout != self.request_timeout_s else self.client
        t0 = time.perf_counter()
        try:
            response = await client.chat(**kwargs)
        except (httpx.ReadTimeout, httpx.ConnectTimeout) as e:
            raise ModelTimeout(f"Ollama timeout after {custom_timeout}s: {e}") from e
        except httpx.HTTPError as e:
            raise ModelRetryable(f"Ollama connection failed: {e}") from e
        except ResponseError as e:
            msg = str(e)
            if _is_retryable(e): raise ModelRetryable(msg) from e
            raise ModelError(msg) from e
        finally:
            if client is not self.client:
                await client.close()
        dt = time.perf_counter() - t0

        message = _field(response, 'message')
        if message is None:
            raise ModelError(f"Received unexpected response structure from Ollama: {response}")

        content = _field(message, 'content', '') or ''
        tool_calls = tuple(
            ToolCall(
                id=f"call_{i}",
                name=_field(_field(tc, 'function'), 'name'),
                arguments=_field(_field(tc, 'function'), 'arguments', {}) or {},
            )
            for i, tc in enumerate(_field(message, 'tool_calls') or [])
        )

        meta = {"provider": "ollama", "model": _field(response, 'model', req.model), "latency": dt}
        for key in ['total_duration', 'load_duration', 'prompt_eval_count', 'prompt_eval_duration', 'eval_count', 'eval_duration']:
            value = _field(response, key)
            if value is not None:
                meta[key] = value

        return ModelResponse(content=content, raw=response, meta=meta, tool_calls=tool_calls)

    async def health_check(self) -> bool:
        try:
            await self.client.list()
            return True
        except (httpx.HTTPError, ResponseError) as e:
            logger.warning(f"Ollama health check failed: {e}")
            return False

    async def cleanup(self) -> None:
        await self.client.close()
