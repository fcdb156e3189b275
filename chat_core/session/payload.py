"""请求体构造。

把 SessionContext 中的模型、采样参数、历史消息与本轮用户输入
序列化为 chat/completions 的 JSON 请求文本：

- model 总是存在；
- 采样参数只在非 0 时写入（稀疏编码，见 SamplingOptions），
  浮点参数固定保留 5 位小数，整数参数按整数写入；
- track_history 打开时先按顺序写入历史消息 {role, content}，
  最后追加 role=user 的本轮消息；
- 所有字符串都经 json.dumps 转义，任意输入（引号、反斜杠、控制字符）
  都能得到合法 JSON。
"""

import json
from typing import List

from chat_core.session.context import SessionContext


def _quote(value: str) -> str:
    return json.dumps(value)


def _message(role: str, content: str) -> str:
    return f'{{"role": {_quote(role)}, "content": {_quote(content)}}}'


def build_payload(ctx: SessionContext, user_message: str, stream: bool = False) -> str:
    """构造请求 JSON 文本。

    Args:
        ctx: 会话上下文。
        user_message: 本轮用户输入（原始文本，转义在这里统一完成）。
        stream: 是否追加 "stream": true。
    """

    s = ctx.sampling
    fields: List[str] = [f'"model": {_quote(ctx.model)}']
    if s.n:
        fields.append(f'"n": {int(s.n)}')
    if s.max_tokens:
        fields.append(f'"max_tokens": {int(s.max_tokens)}')
    if s.presence_penalty:
        fields.append(f'"presence_penalty": {s.presence_penalty:.5f}')
    if s.temperature:
        fields.append(f'"temperature": {s.temperature:.5f}')
    if s.top_p:
        fields.append(f'"top_p": {s.top_p:.5f}')

    messages: List[str] = []
    if ctx.flags.track_history:
        messages.extend(_message(m.role, m.content) for m in ctx.history)
    messages.append(_message("user", user_message))
    fields.append(f'"messages": [{", ".join(messages)}]')

    if stream:
        fields.append('"stream": true')
    return "{" + ", ".join(fields) + "}"
