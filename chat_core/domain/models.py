"""统一的对话与会话配置数据模型。

本模块定义了客户端内部共享的标准数据结构：

- ChatMessage: 一条对话消息（user/assistant/system/function）。
- SamplingOptions: 请求中可选的采样参数。
- SessionFlags: 会话级功能开关（verbose/track_history/persist/stream）。

消息内容在构造时确定且不可变，只在序列化请求时做一次 JSON 转义。
"""

from dataclasses import dataclass, fields
from typing import Dict, Literal, Optional

from .exceptions import ValidationError


# LLM 消息角色类型（与 OpenAI 的 role 字段对应）
Role = Literal["user", "assistant", "system", "function"]

# 数据库 messages.role 列使用的整数编码
ROLE_CODES: Dict[str, int] = {
    "user": 0,
    "assistant": 1,
    "system": 2,
    "function": 4,
}
CODE_ROLES: Dict[int, str] = {code: role for role, code in ROLE_CODES.items()}


def role_from_code(code: int) -> Role:
    """把数据库中的角色编码还原为角色名。"""

    try:
        return CODE_ROLES[code]  # type: ignore[return-value]
    except KeyError:
        raise ValidationError(code="UNKNOWN_ROLE", message=f"Unknown role code: {code}")


@dataclass(frozen=True)
class ChatMessage:
    """一条对话消息。

    - role: 消息角色，必须是 user/assistant/system/function 之一。
    - content: 原始（未转义）文本内容。
    - name: 可选的作者名，只在本地展示，不参与请求序列化。
    """

    role: Role
    content: str
    name: Optional[str] = None

    def __post_init__(self) -> None:
        if self.role not in ROLE_CODES:
            raise ValidationError(code="UNKNOWN_ROLE", message=f"Unknown role: {self.role!r}")

    @property
    def role_code(self) -> int:
        return ROLE_CODES[self.role]


@dataclass
class SamplingOptions:
    """采样参数。

    取值为 0 表示"不发送该字段，使用服务端默认值"。这是稀疏编码：
    显式设置为 0 与未设置无法区分。例如 temperature=0 不会出现在请求中，
    服务端将按默认温度采样。
    """

    temperature: float = 0.0
    top_p: float = 0.0
    presence_penalty: float = 0.0
    n: int = 0
    max_tokens: int = 0


@dataclass
class SessionFlags:
    """会话功能开关，只通过 set() 修改。"""

    verbose: bool = False
    track_history: bool = True
    persist: bool = False
    stream: bool = True

    @classmethod
    def names(cls) -> tuple:
        return tuple(f.name for f in fields(cls))

    def set(self, name: str, value: bool) -> None:
        if name not in self.names():
            raise ValidationError(code="UNKNOWN_FLAG", message=f"Unknown flag: {name!r}")
        setattr(self, name, bool(value))

    def as_dict(self) -> Dict[str, bool]:
        return {name: getattr(self, name) for name in self.names()}
