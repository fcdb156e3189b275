"""会话引擎：上下文、请求体构造、流式/非流式消费者与持久化桥接。"""

from chat_core.session.context import SessionContext
from chat_core.session.engine import ChatEngine
from chat_core.session.persistence import PersistenceBridge

__all__ = ["SessionContext", "ChatEngine", "PersistenceBridge"]
