"""会话上下文。

SessionContext 每个进程创建一次，持有：
- 凭据（API key、可选组织 ID）与模型名；
- 采样参数 SamplingOptions 与功能开关 SessionFlags；
- 当前绑定的会话 ID（0 表示未绑定）；
- 内存消息日志与流式累加器；
- 可选的 SQLite 存储句柄（只有在请求持久化或显式初始化后才存在）。
"""

from typing import Any, Dict, Optional

from chat_core.config.settings import settings
from chat_core.domain.exceptions import ValidationError
from chat_core.domain.history import MessageLog
from chat_core.domain.models import SamplingOptions, SessionFlags
from chat_core.infrastructure.storage.sqlite_store import SqliteChatStore
from chat_core.session.stream import StreamAccumulator


class SessionContext:
    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        organization: Optional[str] = None,
        sampling: Optional[SamplingOptions] = None,
        flags: Optional[SessionFlags] = None,
    ):
        self.api_key = api_key
        self.organization = organization
        self.model = model
        self.sampling = sampling or SamplingOptions()
        self.flags = flags or SessionFlags()
        self.chat_id = 0
        self.history = MessageLog()
        self.accumulator = StreamAccumulator()
        self.store: Optional[SqliteChatStore] = None

    @classmethod
    def from_settings(cls, cfg=settings) -> "SessionContext":
        flags = SessionFlags(
            verbose=cfg.verbose,
            track_history=cfg.track_history,
            persist=cfg.persist,
            stream=cfg.stream,
        )
        return cls(
            api_key=cfg.openai_api_key,
            model=cfg.default_model,
            organization=cfg.openai_organization,
            flags=flags,
        )

    # ---- setters ----

    def set_model(self, model: str) -> None:
        model = (model or "").strip()
        if not model:
            raise ValidationError(code="INVALID_MODEL", message="Model name must not be empty")
        self.model = model

    def set_organization(self, organization: Optional[str]) -> None:
        self.organization = organization or None

    def set_temperature(self, value: float) -> None:
        self.sampling.temperature = _check_range("temperature", value, 0.0, 2.0)

    def set_top_p(self, value: float) -> None:
        self.sampling.top_p = _check_range("top_p", value, 0.0, 1.0)

    def set_presence_penalty(self, value: float) -> None:
        self.sampling.presence_penalty = _check_range("presence_penalty", value, -2.0, 2.0)

    def set_n(self, value: int) -> None:
        if value < 0:
            raise ValidationError(code="INVALID_OPTION", message=f"n must be >= 0, {value} given")
        self.sampling.n = int(value)

    def set_max_tokens(self, value: int) -> None:
        if value < 0:
            raise ValidationError(code="INVALID_OPTION", message=f"max_tokens must be >= 0, {value} given")
        self.sampling.max_tokens = int(value)

    def set_flag(self, name: str, value: bool) -> None:
        self.flags.set(name, value)

    # ----

    def describe(self) -> Dict[str, Any]:
        """当前配置快照，供 info 命令展示。"""

        return {
            "organization": self.organization,
            "model": self.model,
            "n": self.sampling.n,
            "presence_penalty": self.sampling.presence_penalty,
            "max_tokens": self.sampling.max_tokens,
            "temperature": self.sampling.temperature,
            "top_p": self.sampling.top_p,
            "flags": self.flags.as_dict(),
            "chat_id": self.chat_id,
            "messages": len(self.history),
        }

    def close(self) -> None:
        self.history.clear()
        self.accumulator.reset()
        if self.store is not None:
            self.store.close()
            self.store = None


def _check_range(name: str, value: float, low: float, high: float) -> float:
    if not low <= value <= high:
        raise ValidationError(
            code="INVALID_OPTION",
            message=f"{name} must be between {low} and {high}, '{value:g}' given",
        )
    return float(value)
