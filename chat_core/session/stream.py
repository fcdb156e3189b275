"""流式响应消费者。

传输层按任意边界切分响应体，并对每个分块同步调用 StreamConsumer.feed。
每个分块的处理步骤：

1. verbose 模式下原样回显分块，便于排查。
2. 分块以 "{" 开头时，先尝试整体解析为错误 JSON
   （{"error": {"message": ...}}）；取到 message 则发出警告、写入累加器，
   并结束本分块的处理。
3. 否则扫描分块中每一个 "data:" 事件帧，解析其后的 JSON：
   - 解析失败：警告后继续扫描后续帧，不中断整个流。
   - choices[0].delta.content 为字符串：立即写到输出并刷新，同时写入累加器。
   - choices[0].finish_reason 或顶层 finish_reason 非空：正常结束信号，
     本次交换中后续帧与后续分块都不再扫描。
4. 无论内容是否有用，都返回分块的完整长度，否则传输层会中止传输。

已知限制：假设每个分块至少包含一个在本分块内开始且完整的事件帧，
跨分块的帧会被当作解析失败跳过。
"""

import json
import sys
from typing import Any, Dict, List, Optional, TextIO

from chat_core.infrastructure.logging.logger import logger


DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class StreamAccumulator:
    """收集一次流式交换中全部内容片段的临时缓冲区。"""

    def __init__(self):
        self._parts: List[str] = []

    def append(self, text: str) -> None:
        self._parts.append(text)

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def reset(self) -> None:
        self._parts = []

    def __len__(self) -> int:
        return sum(len(p) for p in self._parts)


class StreamConsumer:
    """单次流式交换的帧解析器。

    Attributes:
        finished: 是否已经收到结束信号（finish_reason 或 [DONE]）。
        finish_reason: 服务端给出的结束原因。
        server_error: 服务端错误 JSON 中的 message，未出错时为 None。
        content: 本次交换中收到的 delta 内容（不含错误文本）。
        frames: 成功解析的事件帧数量。
    """

    def __init__(self, accumulator: StreamAccumulator, sink: TextIO = sys.stdout, verbose: bool = False):
        self.accumulator = accumulator
        self.sink = sink
        self.verbose = verbose
        self.finished = False
        self.finish_reason: Optional[str] = None
        self.server_error: Optional[str] = None
        self.frames = 0
        self._content: List[str] = []
        self._decoder = json.JSONDecoder()

    @property
    def content(self) -> str:
        return "".join(self._content)

    def __call__(self, chunk: bytes) -> int:
        return self.feed(chunk)

    def feed(self, chunk: bytes) -> int:
        size = len(chunk)
        text = chunk.decode("utf-8", errors="replace")
        if self.verbose:
            self.sink.write(text + "\n")
            self.sink.flush()
        if self.finished:
            return size
        if text.startswith("{") and self._handle_error_envelope(text):
            return size
        self._scan_frames(text)
        return size

    def _handle_error_envelope(self, text: str) -> bool:
        try:
            envelope = json.loads(text)
        except json.JSONDecodeError:
            return False
        return self._handle_error(envelope)

    def _handle_error(self, obj: Any) -> bool:
        if not isinstance(obj, dict):
            return False
        error = obj.get("error")
        message = error.get("message") if isinstance(error, dict) else None
        if not isinstance(message, str):
            return False
        logger.warning(message, extra={"extra": {"kind": "server_error"}})
        self.accumulator.append(message)
        self.server_error = message
        return True

    def _scan_frames(self, text: str) -> None:
        pos = 0
        while not self.finished:
            pos = text.find(DATA_PREFIX, pos)
            if pos == -1:
                break
            start = pos + len(DATA_PREFIX)
            while start < len(text) and text[start] in " \t":
                start += 1
            if text.startswith(DONE_SENTINEL, start):
                self.finished = True
                break
            try:
                frame, end = self._decoder.raw_decode(text, start)
            except json.JSONDecodeError as e:
                logger.warning("Failed to parse stream frame: %s", e.msg)
                pos = start
                continue
            pos = end
            self._handle_frame(frame)

    def _handle_frame(self, frame: Any) -> None:
        if not isinstance(frame, dict):
            logger.warning("Unexpected stream frame: %r", frame)
            return
        self.frames += 1
        if self._handle_error(frame):
            return

        choice = _first_choice(frame)
        delta = choice.get("delta")
        content = delta.get("content") if isinstance(delta, dict) else None
        if isinstance(content, str):
            self._emit(content)

        reason = choice.get("finish_reason")
        if reason is None:
            reason = frame.get("finish_reason")
        if reason is not None:
            self.finished = True
            self.finish_reason = str(reason)
        elif not isinstance(content, str):
            logger.debug("Ignored stream frame: %s", json.dumps(frame, ensure_ascii=False))

    def _emit(self, content: str) -> None:
        self.sink.write(content)
        self.sink.flush()
        self._content.append(content)
        self.accumulator.append(content)


def _first_choice(frame: Dict[str, Any]) -> Dict[str, Any]:
    choices = frame.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return {}
