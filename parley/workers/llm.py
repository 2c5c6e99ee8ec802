from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional, Sequence

from openai import APIConnectionError
from pydantic_ai import Agent
from pydantic_ai.exceptions import ModelHTTPError, UnexpectedModelBehavior
from pydantic_ai.messages import (
    BinaryContent,
    ModelRequest,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    UserPromptPart,
)
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.litellm import LiteLLMProvider

from parley.config import get_settings
from parley.constants.default_system_prompt import DefaultSystemPrompt
from parley.infra.logging_config import get_logger
from parley.markup import strip_markup
from parley.pipeline.errors import CollaboratorError, TransientCollaboratorError
from parley.pipeline.preprocess import PromptContext
from parley.schemas.context import HistoryTurn

logger = get_logger("workers.llm")

TRANSIENT_STATUS_CODES = frozenset({408, 409, 429, 500, 502, 503, 504, 529})


def current_date_and_time() -> str:
    """Return the current date and time. Use when the user asks for today's date or what day it is."""
    return f"The date and time is {datetime.now()}."


def _history_to_message_list(history: Sequence[HistoryTurn]) -> List[Any]:
    """Convert stored turns (oldest first) into pydantic_ai message_history."""
    out: List[Any] = []
    for turn in history:
        content = (turn.content or "").strip()
        if content:
            out.append(ModelRequest(parts=[UserPromptPart(content=content)]))
        # Stored responses are Telegram HTML; the model sees plain text.
        response = strip_markup(turn.model_response or "").strip()
        if response:
            out.append(ModelResponse(parts=[TextPart(content=response)]))
    return out


def _message_list_with_system_prompt(
    system_prompt: str, history: Sequence[HistoryTurn]
) -> List[Any]:
    """System prompt always first, then conversation history."""
    system_message = ModelRequest(parts=[SystemPromptPart(content=system_prompt)])
    return [system_message] + _history_to_message_list(history)


def _user_prompt(context: PromptContext) -> Any:
    """Prompt text, followed by the attached photo when there is one."""
    if not context.image:
        return context.render_prompt()
    return [
        context.render_prompt(),
        BinaryContent(data=context.image, media_type=context.image_media_type),
    ]


class LLMRunner:
    def __init__(
        self,
        model_name: str,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        system_prompt: Optional[str] = None,
    ) -> None:
        provider = LiteLLMProvider(api_key=api_key, api_base=api_base)
        model = OpenAIChatModel(model_name, provider=provider)
        logger.info("Initializing LLM runner with model %s", model_name)
        self._system_prompt = system_prompt or DefaultSystemPrompt.CONTENT
        self._agent = Agent(model, tools=[current_date_and_time])

    async def complete(self, context: PromptContext) -> str:
        """Run one completion; failures are mapped to transient or permanent collaborator errors."""
        message_history = _message_list_with_system_prompt(
            self._system_prompt, context.history
        )
        try:
            result = await self._agent.run(
                _user_prompt(context),
                message_history=message_history,
            )
        except ModelHTTPError as exc:
            if exc.status_code in TRANSIENT_STATUS_CODES:
                raise TransientCollaboratorError(str(exc)) from exc
            raise CollaboratorError(str(exc)) from exc
        except APIConnectionError as exc:
            raise TransientCollaboratorError(str(exc)) from exc
        except UnexpectedModelBehavior as exc:
            raise CollaboratorError(str(exc)) from exc

        output = str(result.output or "").strip()
        if not output:
            raise TransientCollaboratorError("Model returned an empty answer")
        return output


def build_llm_runner_from_env() -> LLMRunner:
    settings = get_settings()
    logger.info(
        "LLM runner config: model=%s, api_key=%s, api_base=%s",
        settings.llm_model,
        "set" if settings.litellm_api_key else "not set",
        settings.litellm_api_base or "(default)",
    )
    if not settings.litellm_api_key:
        logger.warning(
            "LITELLM_API_KEY is not set; set it to a valid OpenAI or LiteLLM API key to avoid 401 errors."
        )
    return LLMRunner(
        model_name=settings.llm_model,
        api_key=settings.litellm_api_key,
        api_base=settings.litellm_api_base,
    )
