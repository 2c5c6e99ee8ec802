"""
Exchange pipeline: context -> (document) -> model -> format -> validate -> deliver.

One ExchangeOrchestrator.run call handles one exchange. The store and the
document fetcher are synchronous and run in worker threads; the model call
is awaited directly. Cancellation propagates: a message recorded before the
cancellation keeps an absent response. Any other error ends the exchange in
FAILED with the failure notice.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Protocol

from parley.adapters.document_fetcher import DocumentFetcher, DocumentFetchRequest
from parley.config import get_settings
from parley.infra.logging_config import get_logger
from parley.markup import format_markup, render_plain_fallback, validate_markup
from parley.markup.validator import Violation
from parley.pipeline.document_scanner import scan_document
from parley.pipeline.errors import (
    CollaboratorError,
    DeliveryError,
    RejectedInputError,
    RetryBudgetExhausted,
    TransientCollaboratorError,
)
from parley.pipeline.preprocess import PromptContext, build_prompt_context
from parley.pipeline.retry import RetryPolicy, Sleep, call_with_retry
from parley.schemas.context import MessageCreate
from parley.schemas.messaging import DEFAULT_LANGUAGE
from parley.services.context_store import ContextStore
from parley.services.errors import ContextStoreError

logger = get_logger("pipeline.orchestrator")

EMPTY_MESSAGE_REPLY = "I can't reply to an empty message."
DOCUMENT_REQUIRED_REPLY = "Send a valid link (http:// or https://) so I can read the page."
FAILURE_NOTICE = "Something went wrong while preparing the answer. Please try again."

Deliver = Callable[[str], Awaitable[None]]


class ExchangeState(str, Enum):
    RECEIVED = "received"
    CONTEXT_LOADED = "context_loaded"
    WEB_FUSED = "web_fused"
    MODEL_INVOKED = "model_invoked"
    FORMATTED = "formatted"
    VALIDATED = "validated"
    FALLBACK_APPLIED = "fallback_applied"
    DELIVERED = "delivered"
    REJECTED = "rejected"
    FAILED = "failed"


class ModelRunner(Protocol):
    async def complete(self, context: PromptContext) -> str: ...


@dataclass(frozen=True)
class ExchangeRequest:
    user_external_id: int
    chat_external_id: int
    text: str
    language: str = DEFAULT_LANGUAGE
    document_body: Optional[str] = None
    document_url: Optional[str] = None
    expects_document: bool = False
    image: Optional[bytes] = None


@dataclass
class ExchangeResult:
    state: ExchangeState = ExchangeState.RECEIVED
    trace: List[ExchangeState] = field(default_factory=lambda: [ExchangeState.RECEIVED])
    delivered_text: Optional[str] = None
    message_id: Optional[int] = None
    violations: List[Violation] = field(default_factory=list)
    model_attempts: int = 0
    fetch_attempts: int = 0
    error: Optional[str] = None

    def advance(self, state: ExchangeState) -> None:
        self.state = state
        self.trace.append(state)


class ExchangeOrchestrator:
    def __init__(
        self,
        store: ContextStore,
        model: ModelRunner,
        fetcher: Optional[DocumentFetcher] = None,
        *,
        history_limit: Optional[int] = None,
        model_policy: Optional[RetryPolicy] = None,
        fetch_policy: Optional[RetryPolicy] = None,
        store_policy: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        settings = get_settings()
        self._store = store
        self._model = model
        self._fetcher = fetcher
        self._history_limit = history_limit or settings.history_limit
        self._model_policy = model_policy or RetryPolicy.for_model()
        self._fetch_policy = fetch_policy or RetryPolicy.for_fetch()
        self._store_policy = store_policy or RetryPolicy(
            attempts=settings.model_retry_attempts,
            timeout_seconds=None,
            backoff_seconds=settings.retry_backoff_seconds,
        )
        self._sleep = sleep

    async def _store_call(self, label: str, fn, *args):
        value, _ = await call_with_retry(
            lambda: asyncio.to_thread(fn, *args),
            self._store_policy,
            label=label,
            sleep=self._sleep,
        )
        return value

    async def _fetch_document(self, url: str, result: ExchangeResult) -> Optional[str]:
        if self._fetcher is None:
            return None

        async def attempt() -> Optional[str]:
            fetched = await asyncio.to_thread(
                self._fetcher.fetch, DocumentFetchRequest(url=url)
            )
            if fetched.error:
                if fetched.transient:
                    raise TransientCollaboratorError(fetched.error)
                raise CollaboratorError(fetched.error)
            return fetched.body

        body, result.fetch_attempts = await call_with_retry(
            attempt, self._fetch_policy, label="document fetch", sleep=self._sleep
        )
        return body

    async def _load_context(self, request: ExchangeRequest, text: str, body: Optional[str]) -> PromptContext:
        turns = await self._store_call(
            "recent_history",
            self._store.recent_history,
            request.user_external_id,
            request.chat_external_id,
            self._history_limit,
            request.language or DEFAULT_LANGUAGE,
        )
        snapshot = scan_document(body, request.document_url) if body else None
        return build_prompt_context(turns, text, request.language, snapshot, request.image)

    async def run(self, request: ExchangeRequest, deliver: Deliver) -> ExchangeResult:
        result = ExchangeResult()
        try:
            text = (request.text or "").strip()
            if not text:
                raise RejectedInputError(EMPTY_MESSAGE_REPLY)

            body = request.document_body
            if request.expects_document and not body and request.document_url:
                body = await self._fetch_document(request.document_url, result)
            if request.expects_document and not body:
                raise RejectedInputError(DOCUMENT_REQUIRED_REPLY)

            context = await self._load_context(request, text, body)
            result.message_id = await self._store_call(
                "record_exchange",
                self._store.record_exchange,
                MessageCreate(
                    user_external_id=request.user_external_id,
                    chat_external_id=request.chat_external_id,
                    content=context.stored_content(),
                ),
            )
            result.advance(ExchangeState.CONTEXT_LOADED)
            if context.snapshot is not None:
                result.advance(ExchangeState.WEB_FUSED)

            answer, result.model_attempts = await call_with_retry(
                lambda: self._model.complete(context),
                self._model_policy,
                label="model",
                sleep=self._sleep,
            )
            result.advance(ExchangeState.MODEL_INVOKED)

            formatted = format_markup(answer, link_labels=context.link_labels())
            result.advance(ExchangeState.FORMATTED)

            report = validate_markup(formatted)
            if report.ok:
                final_text = formatted
                result.advance(ExchangeState.VALIDATED)
            else:
                logger.warning(
                    "Formatted answer failed validation, sending plain text: %s",
                    report.summary(),
                )
                final_text = render_plain_fallback(answer)
                result.violations = list(report.violations)
                result.advance(ExchangeState.FALLBACK_APPLIED)

            await deliver(final_text)
            result.delivered_text = final_text
            result.advance(ExchangeState.DELIVERED)
        except RejectedInputError as exc:
            logger.info("Exchange rejected: %s", exc.clarification)
            result.advance(ExchangeState.REJECTED)
            await self._notify(deliver, exc.clarification, result)
            return result
        except Exception as exc:
            logger.exception("Exchange failed")
            result.error = str(exc) or repr(exc)
            result.advance(ExchangeState.FAILED)
            await self._notify(deliver, FAILURE_NOTICE, result)
            return result

        await self._attach_response(result)
        return result

    async def _notify(self, deliver: Deliver, text: str, result: ExchangeResult) -> None:
        try:
            await deliver(text)
        except DeliveryError:
            logger.error("Could not deliver the notice for message %s", result.message_id)
            return
        result.delivered_text = text

    async def _attach_response(self, result: ExchangeResult) -> None:
        if result.message_id is None or result.delivered_text is None:
            return
        try:
            await self._store_call(
                "attach_response",
                self._store.attach_response,
                result.message_id,
                result.delivered_text,
            )
        except (RetryBudgetExhausted, ContextStoreError):
            logger.exception("Could not attach the response to message %s", result.message_id)
