import io
import tempfile
from pathlib import Path

import pytest

from chat_core.cli.prompt import Prompt, split_command
from chat_core.domain.exceptions import StoreError
from chat_core.session.context import SessionContext
from chat_core.session.engine import ChatEngine
from chat_core.session.persistence import PersistenceBridge


class FakeTransport:
    name = "fake"

    def __init__(self):
        self.payloads = []

    def chat(self, payload):
        self.payloads.append(payload)
        return {"choices": [{"message": {"content": "pong"}}]}

    def chat_stream(self, payload, on_chunk):
        self.payloads.append(payload)
        chunk = b'data: {"choices":[{"delta":{"content":"pong"},"finish_reason":"stop"}]}\n\n'
        return on_chunk(chunk) == len(chunk)

    def list_models(self):
        return ["gpt-4", "gpt-3.5-turbo"]


def _prompt(db_path=None):
    ctx = SessionContext(api_key="sk-test-123456", model="gpt-4")
    bridge = PersistenceBridge(ctx, db_path or Path(tempfile.gettempdir()) / "cli-test.db")
    engine = ChatEngine(ctx, FakeTransport(), persistence=bridge, sink=io.StringIO())
    return Prompt(engine, out=io.StringIO())


def test_split_command():
    assert split_command("/set-model gpt-4") == ("set-model", "gpt-4")
    assert split_command("/hist-list") == ("hist-list", "")
    assert split_command("/system  be   brief ") == ("system", "be   brief")


def test_plain_line_is_sent():
    p = _prompt()
    assert p.handle("ping") is True
    assert [(m.role, m.content) for m in p.context.history] == [("user", "ping"), ("assistant", "pong")]


def test_system_injection():
    p = _prompt()
    p.handle("/system you are terse")
    assert p.context.history[0].role == "system"
    assert p.context.history[0].content == "you are terse"


def test_hist_commands():
    p = _prompt()
    p.context.history.append("user", "a")
    p.context.history.append("assistant", "b")
    p.handle("/hist-del 0")
    assert [m.content for m in p.context.history] == ["b"]
    p.handle("/hist-del 9")
    assert len(p.context.history) == 1
    p.handle("/hist-list")
    assert "0 [assistant]: b" in p.out.getvalue()
    p.handle("/hist-clear")
    assert len(p.context.history) == 0


def test_bad_option_leaves_value_unchanged():
    p = _prompt()
    assert p.handle("/set-temperature 3.5") is True
    assert p.context.sampling.temperature == 0
    assert p.handle("/set-temperature warm") is True
    assert p.context.sampling.temperature == 0
    p.handle("/set-temperature 0.8")
    assert p.context.sampling.temperature == 0.8


def test_flag_commands():
    p = _prompt()
    p.handle("/set-stream 0")
    assert p.context.flags.stream is False
    p.handle("/set-history 0")
    assert p.context.flags.track_history is False
    p.handle("/set-verbose yes")
    assert p.context.flags.verbose is False


def test_set_model_and_info():
    p = _prompt()
    p.handle("/set-model gpt-3.5-turbo")
    p.handle("/info")
    assert "model: gpt-3.5-turbo" in p.out.getvalue()


def test_models_listed():
    p = _prompt()
    p.handle("/models")
    assert p.out.getvalue().splitlines() == ["gpt-4", "gpt-3.5-turbo"]


def test_unknown_command_keeps_running():
    p = _prompt()
    assert p.handle("/frobnicate") is True


def test_exit():
    assert _prompt().handle("/exit") is False


def test_chat_rename_by_id():
    with tempfile.TemporaryDirectory() as d:
        p = _prompt(Path(d) / "chat.db")
        p.handle("/persist")
        first = p.context.chat_id
        p.handle("/persist")
        assert p.context.chat_id != first
        p.handle(f"/chat-rename {first} weekend plans")
        assert p.context.store.get_chat(first).name == "weekend plans"
        assert p.context.store.get_chat(p.context.chat_id).name is None
        assert p.handle("/chat-rename 999 nope") is True
        assert p.handle("/chat-rename notes") is True
        assert p.handle("/chat-rename abc notes") is True
        assert p.context.store.get_chat(first).name == "weekend plans"
        p.context.close()


def test_save_load_and_delete_chat():
    with tempfile.TemporaryDirectory() as d:
        p = _prompt(Path(d) / "chat.db")
        p.context.history.append("user", "remember me")
        p.handle("/save")
        chat_id = p.context.chat_id
        p.handle("/hist-clear")
        p.handle(f"/chat-load {chat_id}")
        assert [m.content for m in p.context.history] == ["remember me"]
        p.handle("/chat-list")
        assert f"*{chat_id}\t" in p.out.getvalue()
        p.handle(f"/chat-del {chat_id}")
        assert p.context.chat_id == 0
        p.context.close()


def test_file_command_sends_contents():
    with tempfile.TemporaryDirectory() as d:
        path = Path(d) / "notes.txt"
        path.write_text("line one", encoding="utf-8")
        p = _prompt()
        p.handle(f"/file {path} what is this?")
        sent = p.context.history[0].content
        assert sent.startswith("what is this?")
        assert "line one" in sent


def test_store_init_failure_propagates():
    with tempfile.TemporaryDirectory() as d:
        p = _prompt(Path(d))
        with pytest.raises(StoreError):
            p.handle("/persist")


def test_run_reads_until_exit():
    p = _prompt()
    lines = iter(["ping", "/exit", "never"])
    p.run(read=lambda prompt: next(lines))
    assert len(p.context.history) == 2
    assert p.out.getvalue().endswith("Good bye!\n")


def test_run_stops_on_eof():
    p = _prompt()

    def read(prompt):
        raise EOFError

    p.run(read=read)
    assert "Good bye!" in p.out.getvalue()


def test_main_without_api_key_exits_with_error(monkeypatch):
    from chat_core.cli import main
    from chat_core.config.settings import settings

    monkeypatch.setattr(settings, "openai_api_key", None)
    assert main() == 1


def test_store_write_failure_keeps_loop_running(monkeypatch):
    with tempfile.TemporaryDirectory() as d:
        p = _prompt(Path(d) / "chat.db")
        p.handle("/persist")

        def broken(chat_id, items):
            raise StoreError(code="STORE_WRITE_ERROR", message="database is locked")

        monkeypatch.setattr(p.context.store, "insert_messages", broken)
        assert p.handle("hello") is True
        assert len(p.context.history) == 2
        assert p.context.store.list_messages(p.context.chat_id) == []
        p.context.close()


def test_complete_command_names():
    p = _prompt()
    assert p.complete("/chat-l", 0) == "/chat-list"
    assert p.complete("/chat-l", 1) == "/chat-load"
    assert p.complete("/chat-l", 2) is None
    assert p.complete("/set-m", 0) == "/set-model"
    assert p.complete("/set-m", 1) == "/set-max-tokens"
    assert p.complete("hello", 0) is None
