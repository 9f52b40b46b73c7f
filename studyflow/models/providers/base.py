from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List, Tuple, Union

from ...pipeline.media import MediaReference

#unified model errors
class ModelError(RuntimeError): ...
class ModelTimeout(ModelError): ...
class ModelRetryable(ModelError): ...

@dataclass(frozen=True)
class TextSegment:
    text: str

@dataclass(frozen=True)
class MediaSegment:
    media: MediaReference

Segment = Union[TextSegment, MediaSegment]
RenderedPrompt = Tuple[Segment, ...]

@dataclass(frozen=True)
class ToolSpec:
    #what the provider advertises to the model; the implementation stays with the invoker
    name: str
    description: str
    parameters: Dict[str, Any] #json schema

@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: Any #decoded json, or the raw string when the model sent invalid json

@dataclass(frozen=True)
class ToolExchange:
    #one tool round trip to replay on the follow-up generation pass
    calls: Tuple[ToolCall, ...]
    observations: Tuple[str, ...] #same order as calls

@dataclass(frozen=True)
class ChatRequest:
    model: str
    segments: RenderedPrompt
    system: Optional[str] = None
    params: Dict[str, Any] | None = None
    output_schema: Optional[Dict[str, Any]] = None #json schema for structured output
    tools: Tuple[ToolSpec, ...] = ()
    tool_choice: Optional[str] = None #"auto" | "none"
    tool_exchange: Optional[ToolExchange] = None
    response_modalities: Tuple[str, ...] = ("text",)

    @property
    def text(self) -> str:
        return "".join(s.text for s in self.segments if isinstance(s, TextSegment))

    @property
    def media(self) -> List[MediaReference]:
        return [s.media for s in self.segments if isinstance(s, MediaSegment)]

@dataclass(frozen=True)
class ModelResponse:
    content: str
    raw: Any #provider-native response obj/dict
    meta: Dict[str, Any] #timings, token counts, model, created_at, etc.
    tool_calls: Tuple[ToolCall, ...] = ()
    media: Tuple[MediaReference, ...] = () #generated images for image modality

class ModelProvider(ABC):
    @abstractmethod
    async def chat(self, req: ChatRequest) -> ModelResponse:
        raise NotImplementedError

    @abstractmethod
    async def health_check(self) -> bool:
        raise NotImplementedError

    async def cleanup(self) -> None:
        return None
