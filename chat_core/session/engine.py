"""对话引擎。

一轮用户输入的处理路径：
    build_payload -> Transport -> 非流式 / 流式消费者 -> 消息日志（+ 持久化）

任何失败都只影响当前这一轮，会话本身在下一轮仍可使用；不做重试。
"""

import sys
from typing import Any, List, Optional, TextIO

from chat_core.domain.exceptions import BusinessError, StoreError
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.base import Transport
from chat_core.session.context import SessionContext
from chat_core.session.payload import build_payload
from chat_core.session.persistence import PersistenceBridge
from chat_core.session.stream import StreamConsumer


def extract_answer(data: Any) -> Optional[str]:
    """取出 choices[0].message.content，结构不符时返回 None。"""

    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    return content if isinstance(content, str) else None


class ChatEngine:
    def __init__(
        self,
        context: SessionContext,
        transport: Transport,
        persistence: Optional[PersistenceBridge] = None,
        sink: TextIO = sys.stdout,
    ):
        self.context = context
        self.transport = transport
        self.persistence = persistence or PersistenceBridge(context)
        self.sink = sink

    def send(self, message: str) -> Optional[str]:
        """按 stream 开关选择流式或非流式接口。"""

        if self.context.flags.stream:
            return self.chat_stream(message)
        return self.chat(message)

    def chat(self, message: str) -> Optional[str]:
        """非流式对话。

        传输失败（状态码非 200、非 JSON、网络错误）时发出警告并返回 None；
        响应结构中取不到回答时静默返回 None。两种情况都不修改历史。
        """

        ctx = self.context
        payload = build_payload(ctx, message)
        self._echo_payload(payload)
        try:
            data = self.transport.chat(payload)
        except BusinessError as e:
            self._warn_failed(e)
            return None

        answer = extract_answer(data)
        if answer is None:
            logger.debug("No answer in response", extra={"extra": {"model": ctx.model}})
            return None
        self.sink.write(f"\033[0;32m[{ctx.model}]:\033[0m {answer}\n\n")
        self.sink.flush()
        self._record_exchange(message, answer)
        return answer

    def chat_stream(self, message: str) -> Optional[str]:
        """流式对话。

        内容片段边到达边输出；传输层报告成功后，把累加的完整回答按开关
        写入历史（user + assistant 两条）和/或数据库，然后清空累加器。
        服务端错误只作为警告展示，错误文本不写入历史也不入库；错误之前
        已经收到的内容片段仍按正常回答记录，没有内容时整轮丢弃。
        """

        ctx = self.context
        payload = build_payload(ctx, message, stream=True)
        self._echo_payload(payload)
        self.sink.write(f"\033[0;32m[{ctx.model}]:\033[0m ")
        self.sink.flush()

        consumer = StreamConsumer(ctx.accumulator, sink=self.sink, verbose=ctx.flags.verbose)
        try:
            ok = self.transport.chat_stream(payload, consumer.feed)
        except BusinessError as e:
            ok = False
            self._warn_failed(e)
        else:
            if not ok:
                logger.warning("Failed to make request")
        if not ok:
            ctx.accumulator.reset()
            return None

        self.sink.write("\n\n")
        self.sink.flush()
        answer = ctx.accumulator.text
        ctx.accumulator.reset()
        if consumer.server_error is not None:
            answer = consumer.content
            logger.info(
                "Server error dropped from history",
                extra={"extra": {"error": consumer.server_error, "kept_chars": len(answer)}},
            )
            if not answer:
                return None
        self._record_exchange(message, answer)
        return answer

    def list_models(self) -> List[str]:
        return self.transport.list_models()

    def _record_exchange(self, user_message: str, answer: str) -> None:
        ctx = self.context
        if ctx.flags.track_history:
            ctx.history.append("user", user_message)
            ctx.history.append("assistant", answer)
        if not ctx.flags.persist:
            return
        try:
            self.persistence.insert_exchange(user_message, answer)
        except StoreError as e:
            # 建表失败仍然致命；其余写入失败只影响本轮，历史保持已追加的状态
            if e.code == "STORE_INIT_ERROR":
                raise
            logger.warning("Failed to save messages: %s", e.message, extra={"extra": e.log_fields()})

    def _echo_payload(self, payload: str) -> None:
        if self.context.flags.verbose:
            self.sink.write(payload + "\n")

    @staticmethod
    def _warn_failed(error: BusinessError) -> None:
        logger.warning("Failed to make request: %s", error.message, extra={"extra": error.log_fields()})
