import base64
import json
from unittest.mock import AsyncMock, Mock

import pytest

from studyflow.models.manager import DEFAULT_PROMPTS_DIR, ModelManager
from studyflow.models.prompts import PromptManager
from studyflow.models.providers.base import ModelResponse
from studyflow.pipeline.media import encode

# smallest valid PNG (1x1 transparent pixel)
PNG_1X1 = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


def text_response(content, **meta) -> ModelResponse:
    """A provider response carrying text (dicts are sent as JSON)."""
    if not isinstance(content, str):
        content = json.dumps(content)
    return ModelResponse(content=content, raw=None, meta={"provider": "fake", **meta})


@pytest.fixture
def prompt_manager():
    """The prompts shipped with the package."""
    return PromptManager(DEFAULT_PROMPTS_DIR)


@pytest.fixture
def model_manager(prompt_manager):
    """A ModelManager stand-in whose generate() is an AsyncMock the test scripts."""
    manager = Mock(spec=ModelManager)
    manager.prompts = prompt_manager
    manager.generate = AsyncMock()
    return manager


@pytest.fixture
def pdf_ref():
    return encode(b"%PDF-1.4\n1 0 obj << /Type /Catalog >> endobj\n%%EOF", "application/pdf")


@pytest.fixture
def image_ref():
    return encode(PNG_1X1, "image/png")


@pytest.fixture
def audio_ref():
    return encode(b"RIFF\x24\x00\x00\x00WAVEfmt ", "audio/wav")
