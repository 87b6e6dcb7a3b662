"""Structured text generation backed by PydanticAI agents.

Every model call in the pipeline goes through generate_structured(): a prompt
and a pydantic output model in, a validated instance out. PydanticAI handles
schema prompting and re-asks the model when its output fails validation.

Supported model strings:
    - Hosted models: 'openai:gpt-4o-mini', 'anthropic:claude-...', etc.
    - Local OpenAI-compatible servers: 'openai:{model_name}@http://127.0.0.1:8080/v1'

Error Handling:
    Any provider error, timeout or exhausted validation retries raises
    GenerationError. Callers decide whether that fails the stage (planner,
    synthesizer) or only drops one item (researcher).
"""

import asyncio
import logging
from typing import Protocol, TypeVar

from openai import AsyncOpenAI
from pydantic import BaseModel
from pydantic_ai import Agent, PromptedOutput
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.profiles.openai import OpenAIModelProfile
from pydantic_ai.providers.openai import OpenAIProvider

from errors import GenerationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

SYSTEM_PROMPT = (
    "You are a careful assistant working inside a press review production pipeline. "
    "Follow the instructions in the user message exactly and answer only with the requested structure."
)


class StructuredGenerator(Protocol):
    """Text-generation interface used by the stage agents."""

    async def generate_structured(
        self,
        model: str | Model,
        prompt: str,
        output_type: type[T],
    ) -> T: ...


def _parse_local_model(model_str: str) -> tuple[str, str] | None:
    """Parse local model string into (model_name, base_url) or None if not local."""
    if model_str.startswith("openai:") and "@" in model_str:
        rest = model_str[len("openai:"):]
        model_name, base_url = rest.split("@", 1)
        return model_name, base_url
    return None


def _create_model(model: str | Model) -> str | Model:
    """Create the PydanticAI model for a model string.

    Local endpoints get an OpenAIChatModel with a placeholder API key and a
    profile without JSON-object output, which most local servers lack.
    Hosted model strings and Model instances are passed through.
    """
    if not isinstance(model, str):
        return model
    parsed = _parse_local_model(model)
    if parsed is None:
        return model

    model_name, base_url = parsed
    logger.info("Using local model | model=%s base_url=%s", model_name, base_url)
    client = AsyncOpenAI(base_url=base_url, api_key="local-model")
    return OpenAIChatModel(
        model_name=model_name,
        provider=OpenAIProvider(openai_client=client),
        profile=OpenAIModelProfile(supports_json_object_output=False),
    )


class PydanticAIGenerator:
    """StructuredGenerator implementation over PydanticAI agents.

    Agents are built lazily and cached per (model, output type), so each
    stage reuses the same agent across calls.

    Example:
        >>> generator = PydanticAIGenerator(timeout=60, output_retries=2)
        >>> plan = await generator.generate_structured("openai:gpt-4o-mini", prompt, QueryPlan)
    """

    def __init__(self, timeout: float = 120.0, output_retries: int = 2):
        """Initialize the generator.

        Args:
            timeout: Seconds allowed for one call, retries included
            output_retries: Re-asks when output fails schema validation
        """
        self.timeout = timeout
        self.output_retries = output_retries
        self._agents: dict[tuple[str, type[BaseModel]], Agent] = {}

    def _agent_for(self, model: str | Model, output_type: type[T]) -> Agent[None, T]:
        key_name = model if isinstance(model, str) else f"{type(model).__name__}:{id(model)}"
        key = (key_name, output_type)
        agent = self._agents.get(key)
        if agent is None:
            local = isinstance(model, str) and _parse_local_model(model) is not None
            agent = Agent(
                _create_model(model),
                # Local servers often lack tool_choice, so ask for JSON in the prompt instead
                output_type=PromptedOutput(output_type) if local else output_type,
                system_prompt=SYSTEM_PROMPT,
                retries=self.output_retries,
            )
            self._agents[key] = agent
        return agent

    async def generate_structured(
        self,
        model: str | Model,
        prompt: str,
        output_type: type[T],
    ) -> T:
        """Run one structured-generation call.

        Args:
            model: Model string or PydanticAI Model instance
            prompt: Complete user prompt
            output_type: Pydantic model the output must validate against

        Returns:
            Validated output_type instance

        Raises:
            GenerationError: On provider error, timeout or invalid output
        """
        agent = self._agent_for(model, output_type)
        try:
            result = await asyncio.wait_for(agent.run(prompt), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise GenerationError(
                f"{output_type.__name__} generation timed out after {self.timeout:.0f}s"
            ) from None
        except Exception as e:
            raise GenerationError(
                f"{output_type.__name__} generation failed ({type(e).__name__}): {e}"
            ) from e

        usage = result.usage()
        logger.debug(
            "Generated %s | requests=%d tokens=%d",
            output_type.__name__,
            usage.requests,
            usage.total_tokens or 0,
        )
        return result.output
