from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol

from .models import Role


@dataclass
class ChatRecord:
    id: int
    name: Optional[str]
    created_at: datetime
    model: str


@dataclass
class MessageRecord:
    id: int
    chat_id: int
    role: Role
    content: str
    created_at: datetime


class ChatStore(Protocol):
    def create_chat(self, model: str) -> int:
        ...

    def get_chat(self, chat_id: int) -> Optional[ChatRecord]:
        ...

    def rename_chat(self, chat_id: int, name: str) -> bool:
        ...

    def delete_chat(self, chat_id: int) -> bool:
        ...

    def list_chats(self) -> List[ChatRecord]:
        ...

    def list_chat_ids(self) -> List[int]:
        ...

    def insert_message(self, chat_id: int, role: Role, content: str) -> int:
        ...

    def delete_message(self, message_id: int) -> bool:
        ...

    def list_messages(self, chat_id: int) -> List[MessageRecord]:
        ...

    def close(self) -> None:
        ...
