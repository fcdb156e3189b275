"""Transport 抽象接口。

ChatEngine 不直接依赖 httpx，而是依赖此协议：

- chat(payload): 阻塞式请求，成功返回解析后的 JSON。
- chat_stream(payload, on_chunk): 流式 POST，每收到一段字节就同步调用 on_chunk。
- list_models(): 可用模型 id 列表。

这样测试中可以用简单的假对象替换真实网络。
"""

from typing import Any, Callable, Dict, List, Protocol


# on_chunk 返回已消费的字节数；小于分块长度时传输会被中止
ChunkHandler = Callable[[bytes], int]


class Transport(Protocol):
    name: str

    def chat(self, payload: str) -> Dict[str, Any]:
        ...

    def chat_stream(self, payload: str, on_chunk: ChunkHandler) -> bool:
        """返回 True 表示传输层成功（状态码 2xx）。"""

        ...

    def list_models(self) -> List[str]:
        ...
