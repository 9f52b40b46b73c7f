from __future__ import annotations
from typing import Optional, Dict, Any, Tuple, Union
from pathlib import Path
from dataclasses import dataclass, field
from enum import Enum
import yaml
import time
import logging
from contextlib import asynccontextmanager

from .prompts import PromptManager, RenderedMessage
from .providers.base import ChatRequest, ModelProvider, ModelResponse, ModelError, ToolSpec, ToolExchange
from .providers.ollama import OllamaProvider
from .providers.openai_sdk import OpenAIProvider

logger = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).parents[1]
DEFAULT_CONFIG_PATH = PACKAGE_ROOT / "config" / "config.yaml"
DEFAULT_PROMPTS_DIR = PACKAGE_ROOT / "prompts"


class Provider(Enum):
    OLLAMA = "ollama"
    OPENAI = "openai"


@dataclass(frozen=True)
class TaskConfig:
    provider: str
    model: str
    params: Dict[str, Any] = field(default_factory=dict)
    timeout: Optional[float] = None


class ModelManager:
    def __init__(self, config_path: Union[Path, str] = DEFAULT_CONFIG_PATH, prompts_dir: Optional[Path] = None):
        self.config_path = Path(config_path)
        self.config = self._load_config()
        self._providers: Dict[str, ModelProvider] = {}
        self._stats: Dict[str, Dict[str, float]] = {} #performance tracking
        self.prompts = PromptManager(prompts_dir or DEFAULT_PROMPTS_DIR)

    def _load_config(self) -> Dict:
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config not found: {self.config_path}")
        with open(self.config_path) as f:
            config = yaml.safe_load(f) or {}

        if 'providers' not in config:
            raise ValueError("Config missing 'providers'")
        if 'tasks' not in config:
            raise ValueError("Config missing 'tasks'")

        for provider_name, provider_cfg in config['providers'].items():
            if 'type' not in provider_cfg:
                raise ValueError(f"Provider '{provider_name}' missing type")
            if provider_cfg['type'] not in {p.value for p in Provider}:
                raise ValueError(f"Provider '{provider_name}' has unknown type '{provider_cfg['type']}'")

        for task_name, task_cfg in config['tasks'].items():
            if 'provider' not in task_cfg:
                raise ValueError(f"Task '{task_name}' missing provider")
            if 'model' not in task_cfg:
                raise ValueError(f"Task '{task_name}' missing model")
            if task_cfg['provider'] not in config['providers']:
                raise ValueError(f"Task '{task_name}' references unknown provider '{task_cfg['provider']}'")

        return config

    def task_config(self, task: str) -> TaskConfig:
        if task not in self.config["tasks"]:
            raise ValueError(f"Unknown task: {task}")
        cfg = self.config["tasks"][task]
        return TaskConfig(
            provider=cfg["provider"],
            model=cfg["model"],
            params=dict(cfg.get("params") or {}),
            timeout=cfg.get("timeout"),
        )

    def _get_provider(self, provider_name: str) -> ModelProvider:
        if provider_name in self._providers:
            return self._providers[provider_name]
        if provider_name not in self.config['providers']:
            raise ValueError(f"Unknown provider: {provider_name}")

        provider_cfg = self.config["providers"][provider_name]
        provider_type = provider_cfg["type"]
        settings = provider_cfg.get("settings") or {}

        if provider_type == Provider.OLLAMA.value:
            provider = OllamaProvider(**settings)
        elif provider_type == Provider.OPENAI.value:
            provider = OpenAIProvider(**settings)
        else:
            raise ValueError(f"Unknown provider type: {provider_type}")
        self._providers[provider_name] = provider
        logger.info(f"initialized provider: {provider_name}")
        return provider

    async def generate(
        self,
        task: str,
        message: RenderedMessage,
        *,
        output_schema: Optional[Dict[str, Any]] = None,
        tools: Tuple[ToolSpec, ...] = (),
        tool_choice: Optional[str] = None,
        tool_exchange: Optional[ToolExchange] = None,
        response_modalities: Tuple[str, ...] = ("text",),
        **params_override,
    ) -> ModelResponse:
        start_time = time.perf_counter()
        try:
            task_cfg = self.task_config(task)
        except ValueError as e:
            raise ModelError(str(e)) from e

        params = {**task_cfg.params, **params_override}
        if task_cfg.timeout:
            # Ensure custom timeout in params_override takes precedence
            params.setdefault("timeout", task_cfg.timeout)

        request = ChatRequest(
            model=task_cfg.model,
            segments=message.segments,
            system=message.system or None,
            params=params,
            output_schema=output_schema,
            tools=tuple(tools),
            tool_choice=tool_choice,
            tool_exchange=tool_exchange,
            response_modalities=tuple(response_modalities),
        )

        try:
            # settings from config.yaml go straight into the provider constructor
            provider = self._get_provider(task_cfg.provider)
        except (ValueError, TypeError) as e:
            raise ModelError(f"Provider '{task_cfg.provider}' could not be created: {e}") from e
        try:
            response = await provider.chat(request)
        except ModelError:
            self._track_stats(task, (time.perf_counter() - start_time) * 1000, success=False)
            raise
        self._track_stats(task, (time.perf_counter() - start_time) * 1000, success=True)
        return response

    def _track_stats(self, task: str, latency_ms: float, success: bool):
        if task not in self._stats:
            self._stats[task] = {
                'total_calls': 0,
                'successful_calls': 0,
                'total_latency_ms': 0
            }

        stats = self._stats[task]
        stats['total_calls'] += 1
        if success:
            stats['successful_calls'] += 1
            stats['total_latency_ms'] += latency_ms

    def get_stats(self, task: Optional[str] = None) -> Dict:
        if task:
            return self._stats.get(task, {})
        return self._stats

    async def health(self) -> Dict[str, bool]:
        results = {}
        for name in self.config['providers']:
            results[name] = await self._get_provider(name).health_check()
        return results

    async def cleanup(self):
        for name, provider in self._providers.items():
            try:
                await provider.cleanup()
                logger.info(f"Cleaned up provider: {name}")
            except Exception as e:
                logger.error(f"Cleanup failed for {name}: {e}")

        self._providers.clear()

    @asynccontextmanager
    async def session(self):
        try:
            yield self
        finally:
            await self.cleanup()
