import tempfile
from pathlib import Path

import pytest

from chat_core.domain.exceptions import StoreError
from chat_core.infrastructure.storage.sqlite_store import SqliteChatStore
from chat_core.session.context import SessionContext
from chat_core.session.persistence import PersistenceBridge


def _bridge(d, model="gpt-4"):
    ctx = SessionContext(api_key="sk-test-123456", model=model)
    return PersistenceBridge(ctx, Path(d) / "chat-hist.db")


def test_store_is_opened_lazily():
    with tempfile.TemporaryDirectory() as d:
        bridge = _bridge(d)
        assert bridge.context.store is None
        assert not (Path(d) / "chat-hist.db").exists()
        bridge.init_store()
        assert bridge.context.store is not None
        assert (Path(d) / "chat-hist.db").exists()
        bridge.context.close()


def test_save_then_load_reproduces_history():
    with tempfile.TemporaryDirectory() as d:
        bridge = _bridge(d)
        ctx = bridge.context
        ctx.history.append("system", "be brief")
        ctx.history.append("user", 'quote " and \\ backslash')
        ctx.history.append("assistant", "ok")
        chat_id = bridge.new_chat()
        assert chat_id > 0 and ctx.chat_id == chat_id
        assert bridge.save_history() == 3

        records = ctx.store.list_messages(chat_id)
        assert [(r.role, r.content) for r in records] == [
            ("system", "be brief"),
            ("user", 'quote " and \\ backslash'),
            ("assistant", "ok"),
        ]

        ctx.history.clear()
        assert bridge.load_chat_history_by_id(chat_id) is True
        assert [(m.role, m.content) for m in ctx.history] == [(r.role, r.content) for r in records]
        ctx.close()


def test_save_is_not_idempotent():
    with tempfile.TemporaryDirectory() as d:
        bridge = _bridge(d)
        bridge.context.history.append("user", "hi")
        bridge.save()
        bridge.save()
        assert len(bridge.store.list_messages(bridge.context.chat_id)) == 2
        bridge.context.close()


def test_chat_records_model():
    with tempfile.TemporaryDirectory() as d:
        bridge = _bridge(d, model="gpt-3.5-turbo")
        chat_id = bridge.new_chat()
        chats = bridge.list_chats()
        assert [c.id for c in chats] == [chat_id]
        assert chats[0].model == "gpt-3.5-turbo"
        assert chats[0].name is None
        bridge.context.close()


def test_delete_cascades_messages():
    with tempfile.TemporaryDirectory() as d:
        bridge = _bridge(d)
        first = bridge.new_chat()
        bridge.insert_message("user", "one")
        bridge.insert_message("assistant", "two")
        second = bridge.new_chat()
        bridge.insert_message("user", "other")

        assert bridge.delete_chat_by_id(first) is True
        assert bridge.list_chat_ids() == [second]
        assert bridge.store.list_messages(first) == []
        assert len(bridge.store.list_messages(second)) == 1
        bridge.context.close()


def test_delete_current_chat_unbinds():
    with tempfile.TemporaryDirectory() as d:
        bridge = _bridge(d)
        chat_id = bridge.new_chat()
        assert bridge.delete_chat_by_id(chat_id)
        assert bridge.context.chat_id == 0
        assert bridge.delete_chat_by_id(chat_id) is False
        bridge.context.close()


def test_insert_message_creates_chat_when_unbound():
    with tempfile.TemporaryDirectory() as d:
        bridge = _bridge(d)
        assert bridge.context.chat_id == 0
        message_id = bridge.insert_message("user", "hi")
        assert bridge.context.chat_id != 0
        assert bridge.delete_message_by_id(message_id) is True
        assert bridge.delete_message_by_id(message_id) is False
        bridge.context.close()


def test_rename_chat():
    with tempfile.TemporaryDirectory() as d:
        bridge = _bridge(d)
        chat_id = bridge.new_chat()
        assert bridge.rename_chat(chat_id, "weekend plans") is True
        assert bridge.store.get_chat(chat_id).name == "weekend plans"
        assert bridge.rename_chat(chat_id + 100, "nope") is False
        bridge.context.close()


def test_load_unknown_chat_leaves_state_untouched():
    with tempfile.TemporaryDirectory() as d:
        bridge = _bridge(d)
        bridge.context.history.append("user", "keep me")
        assert bridge.load_chat_history_by_id(42) is False
        assert len(bridge.context.history) == 1
        assert bridge.context.chat_id == 0
        bridge.context.close()


def test_enable_sets_flag_and_binds_new_chat():
    with tempfile.TemporaryDirectory() as d:
        bridge = _bridge(d)
        chat_id = bridge.enable()
        assert bridge.context.flags.persist is True
        assert bridge.context.chat_id == chat_id
        assert bridge.enable() == chat_id + 1
        bridge.context.close()


def test_autosave_turns_on_persist():
    with tempfile.TemporaryDirectory() as d:
        bridge = _bridge(d)
        bridge.context.history.append("user", "hi")
        assert bridge.autosave() == 1
        assert bridge.context.flags.persist is True
        bridge.context.close()


def test_init_failure_is_store_init_error():
    with tempfile.TemporaryDirectory() as d:
        # 目录本身不能作为数据库文件打开
        with pytest.raises(StoreError) as exc:
            SqliteChatStore(Path(d))
        assert exc.value.code == "STORE_INIT_ERROR"
        assert exc.value.log_fields()["path"] == str(Path(d))


def test_memory_store_roundtrip():
    store = SqliteChatStore(":memory:")
    chat_id = store.create_chat("gpt-4")
    assert store.insert_messages(chat_id, [("user", "a"), ("function", "b")]) == 2
    assert [r.role for r in store.list_messages(chat_id)] == ["user", "function"]
    store.close()
