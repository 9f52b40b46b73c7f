from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any, Mapping, Tuple, Union
import re
import uuid
import yaml
import jinja2
import logging

from .providers.base import TextSegment, MediaSegment, RenderedPrompt
from ..pipeline.errors import TemplateBindingError
from ..pipeline.media import MediaReference

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptConfig:
    #immutable prompt config
    name: str
    version: str
    system_template: str
    user_template: str
    stop_sequences: Optional[list[str]] = None
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def ref(self) -> str:
        return f"{self.name}@{self.version}"


@dataclass(frozen=True)
class RenderedMessage:
    system: str
    segments: RenderedPrompt


class _MediaSlot:
    #stands in for a MediaReference while jinja renders; finalize swaps it for a marker
    __slots__ = ("marker",)

    def __init__(self, marker: str):
        self.marker = marker

    def __bool__(self) -> bool:
        return True


def _finalize(value: Any) -> Any:
    if isinstance(value, _MediaSlot):
        return value.marker
    if isinstance(value, MediaReference):
        raise TemplateBindingError("Media can only be placed through a top-level input field")
    return value


class PromptRenderer:
    """
    Renders a jinja template against validated flow input into an ordered
    sequence of text and media segments.

    Inputs that are MediaReference objects expand to media segments wherever
    the template prints them; everything else is interpolated as text.
    """

    def __init__(self):
        self.jinja_env = jinja2.Environment(
            undefined=jinja2.StrictUndefined, #strict checking, but 'is defined' test still works
            trim_blocks=True,
            lstrip_blocks=True,
            cache_size=100, #cache compiled templates
            finalize=_finalize,
        )

    def render(self, template: str, inputs: Mapping[str, Any]) -> RenderedPrompt:
        nonce = uuid.uuid4().hex
        media = []
        context: Dict[str, Any] = {}
        for name, value in inputs.items():
            if isinstance(value, MediaReference):
                context[name] = _MediaSlot(f"\x00{nonce}:{len(media)}\x00")
                media.append(value)
            else:
                context[name] = value

        text = self._render_text(template, context)

        segments = []
        parts = re.split(f"\x00{nonce}:(\\d+)\x00", text)
        for i, part in enumerate(parts):
            if i % 2 == 0:
                if not part:
                    continue
                if segments and isinstance(segments[-1], TextSegment):
                    segments[-1] = TextSegment(segments[-1].text + part)
                else:
                    segments.append(TextSegment(part))
            else:
                segments.append(MediaSegment(media[int(part)]))
        return tuple(segments)

    def render_text(self, template: str, inputs: Mapping[str, Any]) -> str:
        segments = self.render(template, inputs)
        if any(isinstance(s, MediaSegment) for s in segments):
            raise TemplateBindingError("Media placeholders are not allowed in a text-only template")
        return "".join(s.text for s in segments)

    def _render_text(self, template: str, context: Mapping[str, Any]) -> str:
        try:
            return self.jinja_env.from_string(template).render(**context)
        except jinja2.UndefinedError as e:
            raise TemplateBindingError(f"Unbound placeholder in prompt template: {e}") from e
        except jinja2.TemplateSyntaxError as e:
            raise TemplateBindingError(f"Invalid prompt template (line {e.lineno}): {e.message}") from e


class PromptManager:
    def __init__(self, prompts_dir: Path, renderer: Optional[PromptRenderer] = None):
        self.prompts_dir = Path(prompts_dir)
        if not self.prompts_dir.exists():
            raise FileNotFoundError(f"Prompts dir not found: {self.prompts_dir}")
        self.renderer = renderer or PromptRenderer()
        self._cache: Dict[str, PromptConfig] = {}

    def load_prompt(self, prompt_ref: str) -> PromptConfig:
        if prompt_ref in self._cache:
            return self._cache[prompt_ref]

        #parse ref
        if '@' not in prompt_ref:
            raise ValueError(f"Invalid prompt reference: {prompt_ref}")

        path_parts, version = prompt_ref.rsplit('@', 1)
        prompt_path = self.prompts_dir / path_parts / version
        if not prompt_path.exists():
            raise FileNotFoundError(f"Prompt not found: {prompt_path}")

        config = self._load_config(prompt_path)
        system_template = self._load_template(prompt_path, "system.j2")
        user_template = self._load_template(prompt_path, "user.j2")

        prompt_config = PromptConfig(
            name=path_parts,
            version=version,
            system_template=system_template,
            user_template=user_template,
            stop_sequences=config.get('stop_sequences'),
            params=config.get('params') or {},
        )

        self._cache[prompt_ref] = prompt_config
        logger.info(f"Loaded prompt: {prompt_ref}")
        return prompt_config

    def render(self, prompt: Union[str, PromptConfig], variables: Mapping[str, Any]) -> RenderedMessage:
        config = self.load_prompt(prompt) if isinstance(prompt, str) else prompt
        system = self.renderer.render_text(config.system_template, variables)
        segments = self.renderer.render(config.user_template, variables)
        logger.debug(f"Rendered {config.ref}: {len(segments)} segment(s)")
        return RenderedMessage(system=system, segments=segments)

    def _load_config(self, prompt_path: Path) -> dict:
        config_path = prompt_path / "config.yaml"
        if not config_path.exists():
            return {}
        with open(config_path) as f:
            return yaml.safe_load(f) or {}

    def _load_template(self, prompt_path: Path, template_name: str) -> str:
        template_path = prompt_path / template_name
        if not template_path.exists():
            raise FileNotFoundError(f"Template file not found: {template_path}")
        return template_path.read_text(encoding="utf-8")

    def clear_cache(self):
        self._cache.clear()
        self.renderer.jinja_env.cache.clear()
        logger.info("Cleared prompt manager caches")
