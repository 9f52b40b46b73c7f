# tests/prompts/test_prompts.py

import pytest
from pathlib import Path

from studyflow.models.prompts import PromptConfig, PromptManager, PromptRenderer
from studyflow.models.providers.base import MediaSegment, TextSegment
from studyflow.pipeline.errors import TemplateBindingError
from studyflow.pipeline.media import encode


@pytest.fixture
def temp_prompts_dir(tmp_path):
    """Create a temporary prompts directory with test data"""
    documents_v1 = tmp_path / "documents" / "answer" / "v1"
    documents_v1.mkdir(parents=True)

    # Prompt with params and stop sequences
    (documents_v1 / "config.yaml").write_text("""
stop_sequences:
  - "END"
params:
  temperature: 0.2
""")
    (documents_v1 / "system.j2").write_text("You answer questions about documents.")
    (documents_v1 / "user.j2").write_text("""Document: {{ documentMediaRef }}
{% if context is defined %}
Context: {{ context }}
{% endif %}
Question: {{ query }}""")

    # Prompt without config file
    chat_v1 = tmp_path / "chat" / "answer" / "v1"
    chat_v1.mkdir(parents=True)
    (chat_v1 / "system.j2").write_text("You are a helpful chatbot.")
    (chat_v1 / "user.j2").write_text("Question: {{ query }}")

    # Prompt with empty config
    minimal_v1 = tmp_path / "minimal" / "test" / "v1"
    minimal_v1.mkdir(parents=True)
    (minimal_v1 / "config.yaml").write_text("")
    (minimal_v1 / "system.j2").write_text("Simple system prompt.")
    (minimal_v1 / "user.j2").write_text("User: {{ input }}")

    return tmp_path


@pytest.fixture
def manager(temp_prompts_dir):
    return PromptManager(temp_prompts_dir)


@pytest.fixture
def renderer():
    return PromptRenderer()


# ============ Prompt Loading Tests ============

class TestPromptLoading:
    def test_load_valid_prompt_with_config(self, manager):
        config = manager.load_prompt("documents/answer@v1")

        assert config.name == "documents/answer"
        assert config.version == "v1"
        assert config.stop_sequences == ["END"]
        assert config.params == {"temperature": 0.2}
        assert "{{ query }}" in config.user_template

    def test_load_prompt_without_config(self, manager):
        config = manager.load_prompt("chat/answer@v1")
        assert config.stop_sequences is None
        assert config.params == {}

    def test_load_prompt_with_empty_config(self, manager):
        config = manager.load_prompt("minimal/test@v1")
        assert config.stop_sequences is None

    def test_load_missing_prompt(self, manager):
        """Fail clearly when prompt doesn't exist"""
        with pytest.raises(FileNotFoundError, match="Prompt not found"):
            manager.load_prompt("documents/answer@v99")

    def test_load_missing_user_template(self, temp_prompts_dir, manager):
        broken = temp_prompts_dir / "broken" / "test" / "v1"
        broken.mkdir(parents=True)
        (broken / "system.j2").write_text("System prompt")

        with pytest.raises(FileNotFoundError, match="Template file not found"):
            manager.load_prompt("broken/test@v1")

    def test_invalid_reference_format(self, manager):
        with pytest.raises(ValueError, match="Invalid prompt reference"):
            manager.load_prompt("documents/answer")  # Missing version

    def test_caching(self, manager):
        config1 = manager.load_prompt("chat/answer@v1")
        config2 = manager.load_prompt("chat/answer@v1")
        assert config1 is config2

    def test_clear_cache(self, manager):
        config1 = manager.load_prompt("chat/answer@v1")
        manager.clear_cache()
        assert manager._cache == {}
        assert manager.load_prompt("chat/answer@v1") is not config1

    def test_prompt_config_ref_property(self, manager):
        assert manager.load_prompt("chat/answer@v1").ref == "chat/answer@v1"

    def test_invalid_directory(self):
        with pytest.raises(FileNotFoundError, match="Prompts dir not found"):
            PromptManager(Path("/nonexistent/directory"))

    def test_config_with_invalid_yaml(self, temp_prompts_dir, manager):
        bad = temp_prompts_dir / "bad" / "yaml" / "v1"
        bad.mkdir(parents=True)
        (bad / "config.yaml").write_text("invalid: yaml: [unclosed")
        (bad / "system.j2").write_text("System")
        (bad / "user.j2").write_text("User")

        with pytest.raises(Exception):  # YAML parsing error
            manager.load_prompt("bad/yaml@v1")


# ============ Rendering Tests ============

class TestPromptRenderer:
    def test_text_only_template(self, renderer):
        segments = renderer.render("Question: {{ query }}", {"query": "What is the weather?"})
        assert segments == (TextSegment("Question: What is the weather?"),)

    def test_media_placeholder_becomes_segment(self, renderer, pdf_ref):
        segments = renderer.render("Document: {{ doc }}\nQuestion: {{ query }}", {"doc": pdf_ref, "query": "Topic?"})
        assert segments == (
            TextSegment("Document: "),
            MediaSegment(pdf_ref),
            TextSegment("\nQuestion: Topic?"),
        )

    def test_media_only_template(self, renderer, image_ref):
        assert renderer.render("{{ image }}", {"image": image_ref}) == (MediaSegment(image_ref),)

    def test_media_order_preserved(self, renderer, image_ref, audio_ref):
        segments = renderer.render("{{ b }}{{ a }}", {"a": image_ref, "b": audio_ref})
        assert segments == (MediaSegment(audio_ref), MediaSegment(image_ref))

    def test_same_media_twice(self, renderer, image_ref):
        segments = renderer.render("{{ img }} and {{ img }}", {"img": image_ref})
        assert segments == (MediaSegment(image_ref), TextSegment(" and "), MediaSegment(image_ref))

    def test_deterministic(self, renderer, pdf_ref):
        inputs = {"doc": pdf_ref, "query": "q"}
        assert renderer.render("{{ doc }} {{ query }}", inputs) == renderer.render("{{ doc }} {{ query }}", inputs)

    def test_text_resembling_marker_is_left_alone(self, renderer):
        text = "\x00deadbeef:0\x00"
        assert renderer.render("{{ t }}", {"t": text}) == (TextSegment(text),)

    def test_jinja_features(self, renderer):
        template = """Items:
{% for item in items %}
- {{ item|upper }}
{% endfor %}"""
        [segment] = renderer.render(template, {"items": ["apple", "banana"]})
        assert "- APPLE" in segment.text
        assert "- BANANA" in segment.text

    def test_unbound_placeholder(self, renderer):
        with pytest.raises(TemplateBindingError, match="Unbound placeholder"):
            renderer.render("Question: {{ query }}", {})

    def test_syntax_error(self, renderer):
        with pytest.raises(TemplateBindingError, match="Invalid prompt template"):
            renderer.render("{% if %}", {})

    def test_render_text_rejects_media(self, renderer, image_ref):
        with pytest.raises(TemplateBindingError):
            renderer.render_text("{{ image }}", {"image": image_ref})

    def test_media_inside_collection_rejected(self, renderer, image_ref):
        with pytest.raises(TemplateBindingError, match="top-level"):
            renderer.render("{{ images[0] }}", {"images": [image_ref]})


class TestPromptManagerRender:
    def test_render_with_optional_variable(self, manager, pdf_ref):
        message = manager.render("documents/answer@v1", {"documentMediaRef": pdf_ref, "context": "Biology 101", "query": "Q?"})

        assert message.system == "You answer questions about documents."
        assert message.segments[1] == MediaSegment(pdf_ref)
        assert "Context: Biology 101" in message.segments[2].text

    def test_render_without_optional_variable(self, manager, pdf_ref):
        message = manager.render("documents/answer@v1", {"documentMediaRef": pdf_ref, "query": "Q?"})
        assert "Context:" not in message.segments[2].text

    def test_render_from_config(self, manager):
        config = PromptConfig("inline/test", "v1", "System {{ who }}", "Hi {{ who }}")
        message = manager.render(config, {"who": "there"})
        assert message.system == "System there"
        assert message.segments == (TextSegment("Hi there"),)

    def test_media_in_system_template_rejected(self, manager, image_ref):
        config = PromptConfig("inline/test", "v1", "{{ image }}", "describe")
        with pytest.raises(TemplateBindingError):
            manager.render(config, {"image": image_ref})

    def test_multiple_prompt_versions(self, temp_prompts_dir, manager):
        v2 = temp_prompts_dir / "chat" / "answer" / "v2"
        v2.mkdir(parents=True)
        (v2 / "system.j2").write_text("You are a terse chatbot.")
        (v2 / "user.j2").write_text("Q: {{ query }}")

        v1_message = manager.render("chat/answer@v1", {"query": "test"})
        v2_message = manager.render("chat/answer@v2", {"query": "test"})
        assert v1_message.system != v2_message.system
        assert v2_message.segments == (TextSegment("Q: test"),)


def test_shipped_prompts_load(prompt_manager):
    for ref in [
        "chat/answer@v1", "documents/answer@v1", "flashcards/text@v1", "flashcards/document@v1",
        "mcq/generate@v1", "images/cartoonify@v1", "audio/transcribe@v1",
    ]:
        assert prompt_manager.load_prompt(ref).ref == ref
