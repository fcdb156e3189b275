"""持久化桥接层。

负责把内存消息日志映射到 SQLite 中的 chat / messages 记录，并管理会话生命周期：
创建、重命名、删除、列出与加载。

存储句柄挂在 SessionContext.store 上，第一次需要时才打开（init_store）；
建表失败抛出 StoreError(code="STORE_INIT_ERROR")，由命令行入口终止进程。
"""

from pathlib import Path
from typing import List, Optional

from chat_core.config.settings import settings
from chat_core.domain.conversation import ChatRecord
from chat_core.domain.models import ChatMessage, Role
from chat_core.infrastructure.logging.logger import logger
from chat_core.infrastructure.storage.sqlite_store import SqliteChatStore
from chat_core.session.context import SessionContext


class PersistenceBridge:
    def __init__(self, context: SessionContext, db_path: Optional[str | Path] = None):
        self.context = context
        self.db_path = db_path or settings.db_path

    def init_store(self) -> SqliteChatStore:
        """惰性打开数据库并建表，之后一直复用同一个连接。"""

        if self.context.store is None:
            self.context.store = SqliteChatStore(self.db_path)
            logger.info("Opened chat store", extra={"extra": {"db_path": str(self.db_path)}})
        return self.context.store

    @property
    def store(self) -> SqliteChatStore:
        return self.init_store()

    # ---- 会话生命周期 ----

    def new_chat(self) -> int:
        """插入一条绑定当前模型的会话记录，并把它设为当前会话。"""

        chat_id = self.store.create_chat(self.context.model)
        self.context.chat_id = chat_id
        logger.info("Created chat", extra={"extra": {"chat_id": chat_id, "model": self.context.model}})
        return chat_id

    def ensure_chat(self) -> int:
        if self.context.chat_id == 0:
            return self.new_chat()
        return self.context.chat_id

    def enable(self) -> int:
        """打开 persist 开关并开始一个新会话，之后每轮对话都会自动入库。"""

        self.context.set_flag("persist", True)
        self.init_store()
        return self.new_chat()

    def save_history(self) -> int:
        """按日志顺序为每条消息插入一行。

        不是幂等的：重复调用会重复插入。返回插入的行数。
        """

        chat_id = self.context.chat_id
        count = self.store.insert_messages(chat_id, ((m.role, m.content) for m in self.context.history))
        logger.info("Saved history", extra={"extra": {"chat_id": chat_id, "rows": count}})
        return count

    def save(self) -> int:
        """save 命令：未绑定会话时先创建，再保存一次历史。"""

        self.ensure_chat()
        return self.save_history()

    def autosave(self) -> int:
        count = self.save()
        self.context.set_flag("persist", True)
        return count

    def insert_message(self, role: Role, content: str) -> int:
        chat_id = self.ensure_chat()
        return self.store.insert_message(chat_id, role, content)

    def insert_exchange(self, user_message: str, answer: str) -> int:
        """在同一个事务内写入一轮对话的 user 与 assistant 两行，要么都写入，要么都不写。"""

        chat_id = self.ensure_chat()
        return self.store.insert_messages(chat_id, [("user", user_message), ("assistant", answer)])

    def rename_chat(self, chat_id: int, name: str) -> bool:
        return self.store.rename_chat(chat_id, name)

    def delete_chat_by_id(self, chat_id: int) -> bool:
        """删除会话，消息通过外键级联删除。删除当前会话时解除绑定。"""

        deleted = self.store.delete_chat(chat_id)
        if deleted and self.context.chat_id == chat_id:
            self.context.chat_id = 0
        return deleted

    def delete_message_by_id(self, message_id: int) -> bool:
        return self.store.delete_message(message_id)

    def list_chat_ids(self) -> List[int]:
        return self.store.list_chat_ids()

    def list_chats(self) -> List[ChatRecord]:
        return self.store.list_chats()

    def load_chat_history_by_id(self, chat_id: int) -> bool:
        """用数据库中的消息整体替换内存日志，并把当前会话切换为 chat_id。

        会话不存在时返回 False，日志与绑定保持不变。
        """

        if self.store.get_chat(chat_id) is None:
            return False
        records = self.store.list_messages(chat_id)
        self.context.history.replace(ChatMessage(role=r.role, content=r.content) for r in records)
        self.context.chat_id = chat_id
        logger.info("Loaded chat", extra={"extra": {"chat_id": chat_id, "messages": len(records)}})
        return True
