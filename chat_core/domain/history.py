"""内存中的消息日志（History Manager）。

MessageLog 按对话顺序保存 ChatMessage：
- append: 追加到末尾，均摊 O(1)。
- delete: 按位置删除，O(n)；越界视为"未找到"，不是错误。
- clear: 清空全部消息。
- render: 按顺序打印每条消息及其序号。

日志只由本类与持久化桥接的 load 操作（整体替换）修改。
"""

import sys
from typing import Iterable, Iterator, List, Optional, TextIO

from .models import ChatMessage, Role


class MessageLog:
    def __init__(self, messages: Optional[Iterable[ChatMessage]] = None):
        self._messages: List[ChatMessage] = list(messages or [])

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(self._messages)

    def __getitem__(self, index: int) -> ChatMessage:
        return self._messages[index]

    def append(self, role: Role, content: str, name: Optional[str] = None) -> ChatMessage:
        msg = ChatMessage(role=role, content=content, name=name)
        self._messages.append(msg)
        return msg

    def delete(self, index: int) -> bool:
        """删除指定位置的消息，返回是否找到。"""

        if not 0 <= index < len(self._messages):
            return False
        del self._messages[index]
        return True

    def clear(self) -> None:
        self._messages = []

    def replace(self, messages: Iterable[ChatMessage]) -> None:
        """用给定消息整体替换日志（从数据库加载会话时使用）。"""

        self._messages = list(messages)

    def render(self, out: TextIO = sys.stdout) -> None:
        for i, msg in enumerate(self._messages):
            label = f"{msg.role}:{msg.name}" if msg.name else msg.role
            out.write(f"{i} [{label}]: {msg.content}\n")
