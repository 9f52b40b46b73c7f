"""
The flow catalogue: every schema-typed operation the app exposes.

Definitions are built once at startup from the versioned prompts on disk and
shared read-only by every request.
"""
from __future__ import annotations
from typing import Any, Dict, Mapping, Optional
import math

from ..models.prompts import PromptManager
from .errors import OutputSchemaViolation, SchemaViolation
from .executor import FlowDefinition
from .schema import array, media_ref, number, obj, schema, string
from .tools import ToolDefinition, make_search_tool

CHAT = "chat"
DOCUMENT_QA = "document_qa"
FLASHCARDS_TEXT = "flashcards_text"
FLASHCARDS_DOCUMENT = "flashcards_document"
MCQ = "mcq"
CARTOONIFY = "cartoonify"
TRANSCRIBE = "transcribe"

DEFAULT_QUESTION_COUNT = 5

ANSWER = schema(string("answer", description="The answer to the question."))

FLASHCARDS = schema(
    array(
        "flashcards",
        obj("flashcard", string("term"), string("definition")),
        description="The generated flashcards.",
    )
)

QUESTIONS = schema(
    array(
        "questions",
        obj("question", string("question"), array("options", string("option")), string("answer")),
    )
)


def check_question_count(inputs: Mapping[str, Any]) -> None:
    count = inputs["numberOfQuestions"]
    if not math.isfinite(count) or count != int(count) or count < 1:
        raise SchemaViolation("numberOfQuestions", "positive whole number", repr(count))


def check_questions(inputs: Mapping[str, Any], output: Mapping[str, Any]) -> None:
    expected = int(inputs["numberOfQuestions"])
    questions = output["questions"]
    if len(questions) != expected:
        raise OutputSchemaViolation("questions", f"{expected} questions", f"{len(questions)} questions")
    for i, question in enumerate(questions):
        matches = question["options"].count(question["answer"])
        if matches != 1:
            raise OutputSchemaViolation(f"questions[{i}].answer", "exactly one matching option",
                                        f"{matches} matching options")


def build_flows(prompts: PromptManager, search_tool: Optional[ToolDefinition] = None) -> Dict[str, FlowDefinition]:
    search_tool = search_tool or make_search_tool()

    flows = [
        FlowDefinition(
            name=CHAT,
            task="chat",
            input_schema=schema(
                string("query", description="The question to ask the chatbot."),
                string("context", default="", description="Earlier conversation to answer from."),
            ),
            output_schema=ANSWER,
            prompt=prompts.load_prompt("chat/answer@v1"),
            tools=(search_tool,),
        ),
        FlowDefinition(
            name=DOCUMENT_QA,
            task="document_qa",
            input_schema=schema(
                media_ref("documentMediaRef", description="The document, as a data URI."),
                string("query"),
            ),
            output_schema=ANSWER,
            prompt=prompts.load_prompt("documents/answer@v1"),
        ),
        FlowDefinition(
            name=FLASHCARDS_TEXT,
            task="flashcards",
            input_schema=schema(string("text")),
            output_schema=FLASHCARDS,
            prompt=prompts.load_prompt("flashcards/text@v1"),
        ),
        FlowDefinition(
            name=FLASHCARDS_DOCUMENT,
            task="flashcards",
            input_schema=schema(media_ref("documentMediaRef")),
            output_schema=FLASHCARDS,
            prompt=prompts.load_prompt("flashcards/document@v1"),
        ),
        FlowDefinition(
            name=MCQ,
            task="mcq",
            input_schema=schema(
                media_ref("documentMediaRef"),
                number("numberOfQuestions", default=DEFAULT_QUESTION_COUNT,
                       description="The number of multiple-choice questions to generate."),
            ),
            output_schema=QUESTIONS,
            prompt=prompts.load_prompt("mcq/generate@v1"),
            input_checks=(check_question_count,),
            checks=(check_questions,),
        ),
        FlowDefinition(
            name=CARTOONIFY,
            task="cartoonify",
            input_schema=schema(media_ref("imageMediaRef")),
            output_schema=schema(media_ref("cartoonMediaRef", description="The cartoonified image.")),
            prompt=prompts.load_prompt("images/cartoonify@v1"),
            response_modalities=("text", "image"),
            structured_output=False,
        ),
        FlowDefinition(
            name=TRANSCRIBE,
            task="transcribe",
            input_schema=schema(media_ref("audioMediaRef")),
            output_schema=schema(
                string("transcription", description="The full transcription of the audio."),
                string("summary", description="A concise summary of the transcription."),
            ),
            prompt=prompts.load_prompt("audio/transcribe@v1"),
        ),
    ]
    return {flow.name: flow for flow in flows}
