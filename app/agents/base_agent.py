"""Base class for Pydantic AI agents."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar, cast

from pydantic import BaseModel
from pydantic_ai import Agent

from app.config import settings

logger = logging.getLogger(__name__)

InputT = TypeVar("InputT", bound=BaseModel)
OutputT = TypeVar("OutputT", bound=BaseModel)


class BaseAgent(ABC, Generic[InputT, OutputT]):
    """Structured-output LLM call shared by the audit agents.

    Subclasses provide ``system_prompt``, the ``output_type`` DTO the model
    must fill, and ``_build_prompt`` for the per-audit user prompt.
    """

    # Model tier for environment-aware resolution (reasoning / standard / fast)
    model_tier: str = "standard"
    # Explicit model override at the class level (bypasses tier resolution)
    model: str | None = None
    # Name of a Settings attribute holding a per-agent model override
    settings_model_attr: str | None = None
    temperature: float = 0.7
    max_retries: int = settings.llm_max_retries

    def __init__(self, model_override: str | None = None) -> None:
        """Initialize the agent.

        Model resolution priority:
        1. model_override parameter (explicit runtime override)
        2. per-agent settings override (settings_model_attr)
        3. model class attribute (if set by subclass)
        4. settings.get_model(self.model_tier) (environment-aware tier fallback)
        """
        settings_override = (
            getattr(settings, self.settings_model_attr, None)
            if self.settings_model_attr
            else None
        )
        if model_override:
            self._model = model_override
            model_source = "runtime_override"
        elif settings_override:
            self._model = settings_override
            model_source = "settings_override"
        elif self.model:
            self._model = self.model
            model_source = "class_override"
        else:
            self._model = settings.get_model(self.model_tier)
            model_source = "tier_default"
        self._agent: Agent[None, OutputT] | None = None

        logger.info(
            "Agent initialized",
            extra={
                "agent": self.__class__.__name__,
                "model": self._model,
                "model_tier": self.model_tier,
                "model_source": model_source,
                "temperature": self.temperature,
            },
        )

    @property
    def model_name(self) -> str:
        """Resolved model identifier."""
        return self._model

    @property
    def agent(self) -> Agent[None, OutputT]:
        """Lazily initialize and return the Pydantic AI agent."""
        if self._agent is None:
            self._agent = cast(
                Agent[None, OutputT],
                Agent(
                    model=self._model,
                    output_type=self.output_type,
                    system_prompt=self.system_prompt,
                    retries=self.max_retries,
                    model_settings={
                        "temperature": self.temperature,
                        "timeout": settings.get_llm_timeout(self.model_tier),
                    },
                ),
            )
        agent = self._agent
        assert agent is not None
        return agent

    @property
    @abstractmethod
    def system_prompt(self) -> str:
        """System prompt for the agent."""
        pass

    @property
    @abstractmethod
    def output_type(self) -> type[OutputT]:
        """Pydantic model type for structured output."""
        pass

    async def run(self, input_data: InputT) -> OutputT:
        """Build the prompt for ``input_data`` and return the validated output.

        Output that keeps failing schema validation after ``max_retries``
        surfaces as the runtime's exception; callers turn it into a phase
        failure.
        """
        agent_name = self.__class__.__name__
        logger.info(
            "Agent run started",
            extra={
                "agent": agent_name,
                "input_type": type(input_data).__name__,
                "model": self._model,
            },
        )

        prompt = self._build_prompt(input_data)
        logger.info(
            "Prompt built, sending to LLM",
            extra={
                "agent": agent_name,
                "prompt_length": len(prompt),
                "model": self._model,
            },
        )

        t0 = time.perf_counter()
        try:
            result = await self.agent.run(prompt)
        except Exception as e:
            logger.warning(
                "Agent run failed",
                extra={
                    "agent": agent_name,
                    "model": self._model,
                    "duration_s": round(time.perf_counter() - t0, 2),
                    "error": repr(e),
                },
            )
            raise
        elapsed = time.perf_counter() - t0

        usage: Any = result.usage()
        logger.info(
            "Agent run completed",
            extra={
                "agent": agent_name,
                "duration_s": round(elapsed, 2),
                "input_tokens": getattr(usage, "input_tokens", None),
                "output_tokens": getattr(usage, "output_tokens", None),
                "total_tokens": getattr(usage, "total_tokens", None),
                "output_type": type(result.output).__name__,
            },
        )

        return result.output

    @abstractmethod
    def _build_prompt(self, input_data: InputT) -> str:
        """Render the user prompt; the system prompt carries the fixed rules."""
        pass
