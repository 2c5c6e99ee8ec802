"""Tests for the pydantic_ai-backed model runner."""

import pytest
from pydantic_ai.exceptions import ModelHTTPError
from pydantic_ai.messages import (
    BinaryContent,
    ModelRequest,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    UserPromptPart,
)
from pydantic_ai.models.function import AgentInfo, FunctionModel

from parley.pipeline.errors import CollaboratorError, TransientCollaboratorError
from parley.pipeline.preprocess import PromptContext
from parley.schemas.context import HistoryTurn
from parley.workers.llm import LLMRunner, _message_list_with_system_prompt


@pytest.fixture
def runner():
    return LLMRunner("gpt-4o-mini", api_key="test-key", system_prompt="Be brief.")


def _context():
    return PromptContext(
        user_text="And now?",
        language="fr",
        history=(HistoryTurn(content="Hi", model_response="<b>Hello</b> &amp; welcome"),),
    )


def test_system_prompt_comes_first_and_responses_are_plain():
    messages = _message_list_with_system_prompt(
        "Be brief.",
        [
            HistoryTurn(content="Hi", model_response="<b>Hello</b>"),
            HistoryTurn(content="Still there?", model_response=None),
        ],
    )

    assert isinstance(messages[0], ModelRequest)
    assert isinstance(messages[0].parts[0], SystemPromptPart)
    assert messages[0].parts[0].content == "Be brief."
    assert isinstance(messages[1].parts[0], UserPromptPart)
    assert isinstance(messages[2], ModelResponse)
    assert messages[2].parts[0].content == "Hello"
    assert messages[3].parts[0].content == "Still there?"
    assert len(messages) == 4


@pytest.mark.asyncio
async def test_complete_sends_history_and_prompt(runner):
    seen = []

    def answer(messages, info: AgentInfo) -> ModelResponse:
        seen.extend(messages)
        return ModelResponse(parts=[TextPart(content="  Bonjour  ")])

    with runner._agent.override(model=FunctionModel(answer)):
        output = await runner.complete(_context())

    assert output == "Bonjour"
    prompt = seen[-1].parts[-1].content
    assert prompt.startswith('Main language is "fr".')
    assert "And now?" in prompt
    assert any(
        isinstance(part, TextPart) and part.content == "Hello & welcome"
        for message in seen
        for part in message.parts
    )


@pytest.mark.asyncio
async def test_complete_sends_the_photo_after_the_prompt(runner):
    seen = []

    def answer(messages, info: AgentInfo) -> ModelResponse:
        seen.extend(messages)
        return ModelResponse(parts=[TextPart(content="A cat.")])

    context = PromptContext(user_text="What is this?", image=b"\xff\xd8\xff\xe0photo")
    with runner._agent.override(model=FunctionModel(answer)):
        assert await runner.complete(context) == "A cat."

    text, image = seen[-1].parts[-1].content
    assert "What is this?" in text
    assert isinstance(image, BinaryContent)
    assert image.data == b"\xff\xd8\xff\xe0photo"
    assert image.media_type == "image/jpeg"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status, error",
    [(503, TransientCollaboratorError), (429, TransientCollaboratorError), (400, CollaboratorError)],
)
async def test_http_errors_are_classified(runner, status, error):
    def fail(messages, info):
        raise ModelHTTPError(status_code=status, model_name="gpt-4o-mini", body="nope")

    with runner._agent.override(model=FunctionModel(fail)):
        with pytest.raises(error):
            await runner.complete(_context())


@pytest.mark.asyncio
async def test_empty_answer_is_transient(runner):
    def blank(messages, info):
        return ModelResponse(parts=[TextPart(content="   ")])

    with runner._agent.override(model=FunctionModel(blank)):
        with pytest.raises(TransientCollaboratorError):
            await runner.complete(_context())
