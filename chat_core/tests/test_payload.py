import json

from chat_core.session.context import SessionContext
from chat_core.session.payload import build_payload


def _ctx(**flags):
    ctx = SessionContext(api_key="sk-test-123456", model="gpt-3.5-turbo")
    for name, value in flags.items():
        ctx.set_flag(name, value)
    return ctx


def test_zero_knobs_are_omitted():
    payload = json.loads(build_payload(_ctx(), "hi"))
    assert payload["model"] == "gpt-3.5-turbo"
    for key in ("temperature", "top_p", "presence_penalty", "n", "max_tokens", "stream"):
        assert key not in payload
    assert payload["messages"] == [{"role": "user", "content": "hi"}]


def test_non_zero_knobs_are_included():
    ctx = _ctx()
    ctx.set_temperature(0.7)
    ctx.set_top_p(0.5)
    ctx.set_presence_penalty(-1.25)
    ctx.set_n(2)
    ctx.set_max_tokens(256)
    text = build_payload(ctx, "hi")
    assert '"temperature": 0.70000' in text
    assert '"top_p": 0.50000' in text
    assert '"presence_penalty": -1.25000' in text
    payload = json.loads(text)
    assert payload["temperature"] == 0.7
    assert payload["n"] == 2
    assert payload["max_tokens"] == 256


def test_explicit_zero_is_indistinguishable_from_unset():
    ctx = _ctx()
    ctx.set_temperature(0.0)
    assert "temperature" not in json.loads(build_payload(ctx, "hi"))


def test_history_is_sent_in_order_when_tracked():
    ctx = _ctx(track_history=True)
    ctx.history.append("system", "be brief")
    ctx.history.append("user", "one")
    ctx.history.append("assistant", "two")
    payload = json.loads(build_payload(ctx, "three"))
    assert payload["messages"] == [
        {"role": "system", "content": "be brief"},
        {"role": "user", "content": "one"},
        {"role": "assistant", "content": "two"},
        {"role": "user", "content": "three"},
    ]


def test_history_is_skipped_when_not_tracked():
    ctx = _ctx(track_history=False)
    ctx.history.append("user", "one")
    payload = json.loads(build_payload(ctx, "two"))
    assert payload["messages"] == [{"role": "user", "content": "two"}]


def test_arbitrary_content_is_escaped():
    nasty = 'say "hi" \\ back\nslash\ttab\x01\x1f }]'
    ctx = _ctx()
    ctx.history.append("assistant", nasty)
    payload = json.loads(build_payload(ctx, nasty))
    assert payload["messages"][0]["content"] == nasty
    assert payload["messages"][1]["content"] == nasty


def test_stream_flag():
    payload = json.loads(build_payload(_ctx(), "hi", stream=True))
    assert payload["stream"] is True
