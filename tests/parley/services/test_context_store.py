"""Tests for ContextStore."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from parley.db import Base, DatabaseManager, build_engine
from parley.models.chat import Chat
from parley.models.language import Language
from parley.models.message import Message
from parley.models.mixins import utcnow
from parley.models.user import User
from parley.schemas.context import NO_HISTORY, MessageCreate
from parley.services.context_store import ContextStore
from parley.services.errors import ConstraintViolationError, NotFoundError


def _count(db_manager, model, *criteria):
    with db_manager.db_session() as db:
        return db.scalar(select(func.count()).select_from(model).where(*criteria))


def _messages(db_manager, chat_id):
    with db_manager.db_session() as db:
        return (
            db.query(Message)
            .filter(Message.chat_external_id == chat_id)
            .order_by(Message.id)
            .all()
        )


def test_ensure_language_is_idempotent(store, db_manager):
    first = store.ensure_language("en")
    second = store.ensure_language("en")
    assert first == second
    assert _count(db_manager, Language, Language.name == "en") == 1


def test_ensure_language_rejects_empty_name(store):
    with pytest.raises(ValueError):
        store.ensure_language("")


def test_ensure_participants_is_idempotent(store, db_manager, setup_participants):
    user_id, chat_id, language_id = setup_participants
    other_language = store.ensure_language("es")

    store.ensure_participants(user_id, chat_id, other_language)

    assert _count(db_manager, User, User.external_id == user_id) == 1
    assert _count(db_manager, Chat, Chat.external_id == chat_id) == 1
    with db_manager.db_session() as db:
        # The first language wins; re-contact does not overwrite it.
        assert db.get(User, user_id).language_id == language_id


def test_ensure_participants_unknown_language(store, user_id, chat_id):
    with pytest.raises(ConstraintViolationError):
        store.ensure_participants(user_id, chat_id, 424242)


def test_recent_history_without_messages_returns_sentinel(store, db_manager, user_id, chat_id):
    turns = store.recent_history(user_id, chat_id, 10)

    assert turns == [NO_HISTORY]
    assert turns[0].is_sentinel
    assert turns[0].content is None and turns[0].model_response is None
    # The pair was created on the way.
    assert _count(db_manager, User, User.external_id == user_id) == 1
    assert _count(db_manager, Chat, Chat.external_id == chat_id) == 1


def test_recent_history_is_newest_first_and_capped(store, setup_participants, record_messages):
    user_id, chat_id, _ = setup_participants
    record_messages(user_id, chat_id, ["m0", "m1", "m2", "m3", "m4"])

    turns = store.recent_history(user_id, chat_id, 3)

    assert [t.content for t in turns] == ["m4", "m3", "m2"]


def test_recent_history_returns_everything_under_the_limit(
    store, setup_participants, record_messages
):
    user_id, chat_id, _ = setup_participants
    record_messages(user_id, chat_id, ["a", "b"])

    turns = store.recent_history(user_id, chat_id, 10)

    assert [t.content for t in turns] == ["b", "a"]
    assert not any(t.is_sentinel for t in turns)


def test_recent_history_only_reads_its_own_pair(
    store, setup_participants, record_messages
):
    user_id, chat_id, language_id = setup_participants
    other_user = user_id + 1
    store.ensure_participants(other_user, chat_id, language_id)
    record_messages(user_id, chat_id, ["mine"])
    record_messages(other_user, chat_id, ["theirs"])

    assert [t.content for t in store.recent_history(user_id, chat_id, 10)] == ["mine"]
    assert [t.content for t in store.recent_history(other_user, chat_id, 10)] == ["theirs"]


def test_recent_history_rejects_non_positive_limit(store, user_id, chat_id):
    with pytest.raises(ValueError):
        store.recent_history(user_id, chat_id, 0)


def test_first_message_end_to_end(store, user_id, chat_id):
    assert store.recent_history(user_id, chat_id, 10) == [NO_HISTORY]

    message_id = store.record_exchange(
        MessageCreate(user_external_id=user_id, chat_external_id=chat_id, content="hi")
    )
    store.attach_response(message_id, "hello")

    turns = store.recent_history(user_id, chat_id, 10)
    assert len(turns) == 1
    assert turns[0].content == "hi"
    assert turns[0].model_response == "hello"


def test_record_exchange_leaves_response_absent(store, setup_participants):
    user_id, chat_id, _ = setup_participants
    store.record_exchange(
        MessageCreate(user_external_id=user_id, chat_external_id=chat_id, content="q")
    )

    (turn,) = store.recent_history(user_id, chat_id, 10)
    assert turn.content == "q"
    assert turn.model_response is None
    assert not turn.is_sentinel


def test_record_exchange_requires_participants(store, user_id, chat_id):
    with pytest.raises(ConstraintViolationError):
        store.record_exchange(
            MessageCreate(user_external_id=user_id, chat_external_id=chat_id, content="q")
        )


def test_attach_response_unknown_message(store):
    with pytest.raises(NotFoundError):
        store.attach_response(123456, "late answer")


def test_clear_history_hides_messages(store, setup_participants, record_messages):
    user_id, chat_id, _ = setup_participants
    record_messages(user_id, chat_id, ["old1", "old2"])

    assert store.clear_history(user_id, chat_id) == 2
    assert store.clear_history(user_id, chat_id) == 0
    assert store.recent_history(user_id, chat_id, 10) == [NO_HISTORY]

    record_messages(user_id, chat_id, ["new"])
    assert [t.content for t in store.recent_history(user_id, chat_id, 10)] == ["new"]


def test_soft_delete_chat_cascades_with_one_timestamp(
    store, db_manager, setup_participants, record_messages
):
    user_id, chat_id, language_id = setup_participants
    other_chat = chat_id - 1
    store.ensure_participants(user_id, other_chat, language_id)
    record_messages(user_id, chat_id, ["a", "b", "c"])
    record_messages(user_id, other_chat, ["kept"])

    assert store.soft_delete_chat(chat_id) == 3

    with db_manager.db_session() as db:
        chat_deleted_at = db.get(Chat, chat_id).deleted_at
    assert chat_deleted_at is not None
    assert all(m.deleted_at == chat_deleted_at for m in _messages(db_manager, chat_id))
    assert all(m.deleted_at is None for m in _messages(db_manager, other_chat))
    assert [t.content for t in store.recent_history(user_id, other_chat, 10)] == ["kept"]


def test_soft_delete_chat_twice_changes_nothing(
    store, db_manager, setup_participants, record_messages
):
    user_id, chat_id, _ = setup_participants
    record_messages(user_id, chat_id, ["a"])
    store.soft_delete_chat(chat_id)
    with db_manager.db_session() as db:
        first = db.get(Chat, chat_id).deleted_at

    assert store.soft_delete_chat(chat_id) == 0
    with db_manager.db_session() as db:
        assert db.get(Chat, chat_id).deleted_at == first


def test_soft_delete_unknown_chat(store):
    with pytest.raises(NotFoundError):
        store.soft_delete_chat(-987654321)


def test_attach_response_after_chat_removed(store, setup_participants, record_messages):
    user_id, chat_id, _ = setup_participants
    (message_id,) = record_messages(user_id, chat_id, ["pending"])
    store.soft_delete_chat(chat_id)

    with pytest.raises(NotFoundError):
        store.attach_response(message_id, "too late")


def test_ensure_participants_keeps_a_removed_chat_removed(
    store, db_manager, setup_participants, record_messages
):
    user_id, chat_id, language_id = setup_participants
    record_messages(user_id, chat_id, ["before removal"])
    store.soft_delete_chat(chat_id)
    with db_manager.db_session() as db:
        removed_at = db.get(Chat, chat_id).deleted_at

    store.ensure_participants(user_id, chat_id, language_id)
    assert store.recent_history(user_id, chat_id, 10) == [NO_HISTORY]

    with db_manager.db_session() as db:
        assert db.get(Chat, chat_id).deleted_at == removed_at
    assert _count(db_manager, Message, Message.chat_external_id == chat_id) == 1


def test_ensure_participants_keeps_a_deleted_user_deleted(
    store, db_manager, setup_participants
):
    user_id, chat_id, language_id = setup_participants
    with db_manager.db_session() as db:
        db.get(User, user_id).deleted_at = utcnow()
    with db_manager.db_session() as db:
        removed_at = db.get(User, user_id).deleted_at

    store.ensure_participants(user_id, chat_id, language_id)

    with db_manager.db_session() as db:
        assert db.get(User, user_id).deleted_at == removed_at
    assert _count(db_manager, User, User.external_id == user_id) == 1


def test_removed_chat_still_records_new_messages(
    store, db_manager, setup_participants, record_messages
):
    user_id, chat_id, _ = setup_participants
    record_messages(user_id, chat_id, ["before removal"])
    store.soft_delete_chat(chat_id)

    message_id = store.record_exchange(
        MessageCreate(user_external_id=user_id, chat_external_id=chat_id, content="after")
    )
    store.attach_response(message_id, "answer")

    assert [(t.content, t.model_response) for t in store.recent_history(user_id, chat_id, 10)] == [
        ("after", "answer")
    ]
    with db_manager.db_session() as db:
        assert db.get(Chat, chat_id).deleted_at is not None


def test_same_created_at_breaks_ties_by_insertion(store, setup_participants):
    user_id, chat_id, _ = setup_participants
    at = utcnow() - timedelta(minutes=5)
    for content in ("first", "second"):
        store.record_exchange(
            MessageCreate(
                user_external_id=user_id,
                chat_external_id=chat_id,
                content=content,
                created_at=at,
            )
        )

    assert [t.content for t in store.recent_history(user_id, chat_id, 1)] == ["second"]


@pytest.fixture
def file_db_manager(tmp_path):
    """File-backed SQLite so that each thread gets its own connection and transaction."""
    engine = build_engine(
        f"sqlite:///{tmp_path / 'context.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield DatabaseManager(engine)
    engine.dispose()


def _run_together(fn, workers=4):
    barrier = threading.Barrier(workers)

    def call():
        barrier.wait()
        return fn()

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(call) for _ in range(workers)]
        return [f.result() for f in futures]


def test_concurrent_ensure_language_creates_one_row(file_db_manager):
    store = ContextStore(file_db_manager)

    ids = _run_together(lambda: store.ensure_language("pt"))

    assert len(set(ids)) == 1
    assert _count(file_db_manager, Language, Language.name == "pt") == 1


def test_concurrent_first_messages_create_one_pair(file_db_manager, user_id, chat_id):
    store = ContextStore(file_db_manager)

    results = _run_together(lambda: store.recent_history(user_id, chat_id, 10))

    assert all(turns == [NO_HISTORY] for turns in results)
    assert _count(file_db_manager, Language, Language.name == "en") == 1
    assert _count(file_db_manager, User, User.external_id == user_id) == 1
    assert _count(file_db_manager, Chat, Chat.external_id == chat_id) == 1
