"""Chat Core 顶层包。

该包提供命令行对话客户端的核心实现，
包括配置加载、领域模型、HTTP 传输、流式响应解析、
内存消息日志与 SQLite 持久化等能力。
"""

from chat_core.session import ChatEngine, PersistenceBridge, SessionContext

__all__ = ["ChatEngine", "PersistenceBridge", "SessionContext"]
