from __future__ import annotations
from typing import Dict, Any, Optional, List
import base64
import json
import logging
import time
from os import getenv

from openai import AsyncOpenAI
from openai import APIError, APITimeoutError, APIConnectionError, OpenAIError
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential_jitter, retry_if_exception

from .base import (
    ModelProvider, ChatRequest, ModelResponse, ModelError, ModelRetryable, ModelTimeout,
    TextSegment, MediaSegment, ToolCall,
)
from ...pipeline.errors import UnsupportedMediaError
from ...pipeline.media import MediaReference

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {408, 409, 429, 500, 502, 503, 504}
AUDIO_FORMATS = {"audio/wav": "wav", "audio/x-wav": "wav", "audio/wave": "wav", "audio/mpeg": "mp3", "audio/mp3": "mp3"}

# Define retryable OpenAI exceptions
def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (APITimeoutError, APIConnectionError, ModelTimeout, ModelRetryable)):
        return True
    if isinstance(exc, APIError):
        return getattr(exc, 'status_code', None) in RETRYABLE_STATUS
    return False

class OpenAIProvider(ModelProvider):
    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None, default_headers: Optional[Dict[str, str]] = None, timeout: float = 60.0, max_attempts: int = 1, **kwargs):
        try:
            self.client = AsyncOpenAI(
                base_url=base_url,
                api_key=api_key or getenv("OPENAI_API_KEY"),
                default_headers=default_headers or {},
                timeout=timeout,
                max_retries=0, #retries are decided by max_attempts below
                **kwargs
            )
        except OpenAIError as e:
            # the SDK refuses to build a client without an API key
            raise ModelError(f"OpenAI client could not be created: {e}") from e
        self.base_url = base_url
        self.timeout = timeout
        self.max_attempts = max(1, int(max_attempts))

    def _media_part(self, ref: MediaReference) -> Dict[str, Any]:
        if ref.category == "image":
            return {"type": "image_url", "image_url": {"url": ref.uri, "detail": "high"}}
        if ref.category == "audio":
            audio_format = AUDIO_FORMATS.get(ref.base_type)
            if audio_format is None:
                raise UnsupportedMediaError(f"OpenAI does not accept audio of type {ref.base_type}")
            return {"type": "input_audio", "input_audio": {"data": ref.payload, "format": audio_format}}
        # PDFs and other documents go in as file parts
        extension = ref.base_type.split("/", 1)[1]
        return {"type": "file", "file": {"filename": f"document.{extension}", "file_data": ref.uri}}

    def _format_messages(self, req: ChatRequest) -> List[Dict[str, Any]]:
        """Format rendered segments for OpenAI - text and media become one content array"""
        messages: List[Dict[str, Any]] = []
        if req.system:
            messages.append({"role": "system", "content": req.system})

        content = []
        for segment in req.segments:
            if isinstance(segment, TextSegment):
                content.append({"type": "text", "text": segment.text})
            elif isinstance(segment, MediaSegment):
                content.append(self._media_part(segment.media))
        messages.append({"role": "user", "content": content})

        exchange = req.tool_exchange
        if exchange:
            messages.append({
                "role": "assistant",
                "content": None,
                "tool_calls": [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": call.arguments if isinstance(call.arguments, str) else json.dumps(call.arguments),
                        },
                    }
                    for call in exchange.calls
                ],
            })
            for call, observation in zip(exchange.calls, exchange.observations):
                messages.append({"role": "tool", "tool_call_id": call.id, "content": observation})
        return messages

    async def chat(self, req: ChatRequest) -> ModelResponse:
        retrying = AsyncRetrying(
            reraise=True,
            wait=wait_exponential_jitter(initial=0.5, max=4),
            stop=stop_after_attempt(self.max_attempts),
            retry=retry_if_exception(_is_retryable),
        )
        async for attempt in retrying:
            with attempt:
                if "image" in req.response_modalities:
                    return await self._generate_image(req)
                return await self._complete(req)

    async def _complete(self, req: ChatRequest) -> ModelResponse:
        params = dict(req.params or {})

        completion_params: Dict[str, Any] = {
            "model": req.model,
            "messages": self._format_messages(req),
            **params
        }
        if req.output_schema is not None:
            completion_params["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "response_schema", "schema": req.output_schema},
            }
        if req.tools:
            completion_params["tools"] = [
                {"type": "function", "function": {"name": t.name, "description": t.description, "parameters": t.parameters}}
                for t in req.tools
            ]
            if req.tool_choice:
                completion_params["tool_choice"] = req.tool_choice

        t0 = time.perf_counter()
        response = await self._call(self.client.chat.completions.create, **completion_params)
        dt = time.perf_counter() - t0

        # Extract content from response with robust error handling
        try:
            choice = response.choices[0]
            message = choice.message
        except (IndexError, AttributeError) as e:
            raise ModelError(f"Invalid response structure from OpenAI API: {e}") from e

        tool_calls = tuple(
            ToolCall(id=tc.id, name=tc.function.name, arguments=_decode_arguments(tc.function.arguments))
            for tc in (getattr(message, "tool_calls", None) or [])
        )

        meta = self._meta(response, req.model, dt)
        meta["finish_reason"] = getattr(choice, 'finish_reason', None)
        return ModelResponse(content=message.content or "", raw=response, meta=meta, tool_calls=tool_calls)

    async def _generate_image(self, req: ChatRequest) -> ModelResponse:
        images = [m for m in req.media if m.category == "image"]
        if not images:
            raise ModelError("Image generation needs an input image")
        source = images[0]
        extension = source.base_type.split("/", 1)[1]

        t0 = time.perf_counter()
        response = await self._call(
            self.client.images.edit,
            model=req.model,
            image=(f"input.{extension}", source.data, source.base_type),
            prompt=req.text,
            **dict(req.params or {}),
        )
        dt = time.perf_counter() - t0

        media = []
        for item in getattr(response, "data", None) or []:
            if getattr(item, "b64_json", None):
                media.append(MediaReference(mime_type="image/png", data=base64.b64decode(item.b64_json)))
        return ModelResponse(content="", raw=response, meta=self._meta(response, req.model, dt), media=tuple(media))

    async def _call(self, method, **kwargs):
        try:
            return await method(**kwargs)
        except APITimeoutError as e:
            raise ModelTimeout(f"OpenAI timeout: {e}") from e
        except APIConnectionError as e:
            raise ModelRetryable(f"OpenAI connection error: {e}") from e
        except APIError as e:
            msg = f"OpenAI API error: {e}"
            if _is_retryable(e):
                raise ModelRetryable(msg) from e
            raise ModelError(msg) from e

    def _meta(self, response: Any, model: str, latency: float) -> Dict[str, Any]:
        meta = {
            "provider": "openai",
            "model": getattr(response, 'model', None) or model,
            "latency": latency,
            "base_url": self.base_url or "https://api.openai.com/v1",
        }
        usage = getattr(response, 'usage', None)
        if usage is not None and hasattr(usage, 'model_dump'):
            meta["usage"] = usage.model_dump()
        if getattr(response, 'id', None):
            meta["id"] = response.id
        return meta

    async def health_check(self) -> bool:
        try:
            await self.client.models.list()
            return True
        except APIError as e:
            logger.warning(f"OpenAI health check failed: {e}")
            return False

    async def cleanup(self) -> None:
        await self.client.close()


def _decode_arguments(arguments: Optional[str]) -> Any:
    if not arguments:
        return {}
    try:
        return json.loads(arguments)
    except json.JSONDecodeError:
        return arguments
