"""SQLite 会话存储。

表结构：
- chat(id, name, created, model): 会话头。
- messages(id, chat_id, created, role, msg): 消息，chat_id 外键级联删除。

连接在构造时打开，由 SessionContext 独占并在进程生命周期内保持打开。
"""

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from chat_core.domain.conversation import ChatRecord, ChatStore, MessageRecord
from chat_core.domain.exceptions import StoreError
from chat_core.domain.models import ROLE_CODES, Role, role_from_code


SCHEMA = """
CREATE TABLE IF NOT EXISTS chat(
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT,
    created DATETIME DEFAULT CURRENT_TIMESTAMP,
    model TEXT
);
CREATE TABLE IF NOT EXISTS messages(
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_id INT,
    created DATETIME DEFAULT CURRENT_TIMESTAMP,
    role INT,
    msg TEXT,
    CONSTRAINT chat_k FOREIGN KEY(chat_id) REFERENCES chat(id) ON DELETE CASCADE
);
CREATE INDEX IF NOT EXISTS idx_messages_chat ON messages(chat_id);
"""


class SqliteChatStore(ChatStore):
    """基于 sqlite3 的 ChatStore 实现。"""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        try:
            if str(self.db_path) != ":memory:":
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.executescript(SCHEMA)
            self._conn.commit()
        except (OSError, sqlite3.Error) as e:
            raise StoreError(code="STORE_INIT_ERROR", message=f"DB initialization error: {e}", path=str(self.db_path))

    def _execute(self, sql: str, params: Tuple = ()) -> sqlite3.Cursor:
        try:
            with self._conn:
                return self._conn.execute(sql, params)
        except sqlite3.Error as e:
            raise StoreError(code="STORE_WRITE_ERROR", message=str(e))

    def _query(self, sql: str, params: Tuple = ()) -> List[sqlite3.Row]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(code="STORE_READ_ERROR", message=str(e))

    @staticmethod
    def _parse_ts(value: Optional[str]) -> datetime:
        if not value:
            return datetime.min
        return datetime.fromisoformat(value)

    def _row_to_chat(self, row: sqlite3.Row) -> ChatRecord:
        return ChatRecord(
            id=row["id"],
            name=row["name"],
            created_at=self._parse_ts(row["created"]),
            model=row["model"],
        )

    def _row_to_message(self, row: sqlite3.Row) -> MessageRecord:
        return MessageRecord(
            id=row["id"],
            chat_id=row["chat_id"],
            role=role_from_code(row["role"]),
            content=row["msg"] or "",
            created_at=self._parse_ts(row["created"]),
        )

    def create_chat(self, model: str) -> int:
        cursor = self._execute("INSERT INTO chat(model) VALUES (?)", (model,))
        return int(cursor.lastrowid)

    def get_chat(self, chat_id: int) -> Optional[ChatRecord]:
        rows = self._query("SELECT * FROM chat WHERE id = ?", (chat_id,))
        return self._row_to_chat(rows[0]) if rows else None

    def rename_chat(self, chat_id: int, name: str) -> bool:
        cursor = self._execute("UPDATE chat SET name = ? WHERE id = ?", (name, chat_id))
        return cursor.rowcount > 0

    def delete_chat(self, chat_id: int) -> bool:
        cursor = self._execute("DELETE FROM chat WHERE id = ?", (chat_id,))
        return cursor.rowcount > 0

    def list_chats(self) -> List[ChatRecord]:
        return [self._row_to_chat(row) for row in self._query("SELECT * FROM chat ORDER BY id")]

    def list_chat_ids(self) -> List[int]:
        return [row["id"] for row in self._query("SELECT id FROM chat ORDER BY id")]

    def insert_message(self, chat_id: int, role: Role, content: str) -> int:
        cursor = self._execute(
            "INSERT INTO messages (chat_id, role, msg) VALUES (?, ?, ?)",
            (chat_id, ROLE_CODES[role], content),
        )
        return int(cursor.lastrowid)

    def insert_messages(self, chat_id: int, items: Iterable[Tuple[Role, str]]) -> int:
        """在一个事务内按顺序插入多条消息，返回插入条数。"""

        rows = [(chat_id, ROLE_CODES[role], content) for role, content in items]
        try:
            with self._conn:
                self._conn.executemany(
                    "INSERT INTO messages (chat_id, role, msg) VALUES (?, ?, ?)",
                    rows,
                )
        except sqlite3.Error as e:
            raise StoreError(code="STORE_WRITE_ERROR", message=str(e))
        return len(rows)

    def delete_message(self, message_id: int) -> bool:
        cursor = self._execute("DELETE FROM messages WHERE id = ?", (message_id,))
        return cursor.rowcount > 0

    def list_messages(self, chat_id: int) -> List[MessageRecord]:
        rows = self._query("SELECT * FROM messages WHERE chat_id = ? ORDER BY id", (chat_id,))
        return [self._row_to_message(row) for row in rows]

    def close(self) -> None:
        self._conn.close()
