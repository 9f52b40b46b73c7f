"""
API models for the flow endpoints.

Flow inputs and outputs are validated by the flow schemas themselves, so the
bodies here stay loose (`Dict[str, Any]`); only the chat endpoint, which has to
rebuild context from history, gets a dedicated request model.
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional

from .common import APIError, APIResponse

# API Request Models
class ConversationTurnModel(BaseModel):
    role: Literal["user", "assistant", "bot"] = Field(..., description="Who said it")
    content: str = Field(..., description="What was said")

class ChatRequest(BaseModel):
    """A chat turn. The client sends the whole history it wants the model to see."""
    query: str = Field(..., min_length=1, description="The new question")
    history: List[ConversationTurnModel] = Field(default_factory=list, description="Earlier turns, oldest first")
    documentMediaRef: Optional[str] = Field(None, description="Optional document to answer from, as a data URI")

    model_config = {
        "json_schema_extra": {
            "example": {
                "query": "And tomorrow?",
                "history": [
                    {"role": "user", "content": "What is the weather?"},
                    {"role": "assistant", "content": "The weather is sunny, 25°C."},
                ],
            }
        }
    }

# API Response Models
class FlowResponse(APIResponse):
    flow: str = Field(..., description="Name of the flow that ran")
    data: Optional[Dict[str, Any]] = None
    error: Optional[APIError] = None
    processing_time: Optional[float] = None

class MediaEncodeData(BaseModel):
    mediaRef: str = Field(..., description="data: URI holding the uploaded file")
    mimeType: str
    size: int = Field(..., description="Size of the decoded file in bytes")

class MediaEncodeResponse(APIResponse):
    data: Optional[MediaEncodeData] = None

class FlowInfo(BaseModel):
    name: str
    task: str
    input_schema: Dict[str, Any]
    output_schema: Dict[str, Any]
    tools: List[str]
