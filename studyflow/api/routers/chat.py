"""
Chat endpoint.

Every request carries the conversation so far; the context for the model is
rebuilt from it on each call and nothing is remembered afterwards.
"""
from typing import Dict

from fastapi import APIRouter, Depends

from ..models.flows import ChatRequest, FlowResponse
from ..dependencies.services import get_executor, get_flows
from .flows import to_response
from studyflow.pipeline.conversation import ConversationTurn, append_turn, build_context
from studyflow.pipeline.executor import FlowDefinition, FlowExecutor
from studyflow.pipeline.flows import CHAT, DOCUMENT_QA

router = APIRouter()


@router.post("/", response_model=FlowResponse)
async def chat(
    request: ChatRequest,
    executor: FlowExecutor = Depends(get_executor),
    flows: Dict[str, FlowDefinition] = Depends(get_flows),
):
    """
    Answer the next chat turn.

    With a document attached the question goes to document Q&A; otherwise the
    history plus the new query are flattened into context for the chatbot.
    """
    if request.documentMediaRef:
        result = await executor.run(
            flows[DOCUMENT_QA],
            {"documentMediaRef": request.documentMediaRef, "query": request.query},
        )
        return to_response(result)

    history = [ConversationTurn.from_dict(turn.model_dump()) for turn in request.history]
    history = append_turn(history, "user", request.query)
    result = await executor.run(flows[CHAT], {"query": request.query, "context": build_context(history)})
    return to_response(result)
