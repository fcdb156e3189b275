"""交互式命令行。

不以 "/" 开头的输入作为一轮对话发送；"/name args" 通过命令表分发。
命令处理函数抛出的 BusinessError 只提示给用户，不会结束循环。
"""

import shlex
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, TextIO, Tuple

from chat_core.domain.exceptions import BusinessError, StoreError, ValidationError
from chat_core.infrastructure.logging.logger import logger
from chat_core.session.engine import ChatEngine


PROMPT = ">>> "


class UsageError(ValidationError):
    def __init__(self, usage: str):
        super().__init__(code="USAGE", message=f"Usage: /{usage}")


@dataclass
class Command:
    name: str
    handler: Callable[["Prompt", str], Optional[bool]]
    usage: str
    help: str


def split_command(line: str) -> Tuple[str, str]:
    """把 "/name rest of line" 拆成 ("name", "rest of line")。"""

    body = line[1:] if line.startswith("/") else line
    name, _, rest = body.strip().partition(" ")
    return name, rest.strip()


def _args(rest: str, count: int, usage: str) -> List[str]:
    try:
        args = shlex.split(rest)
    except ValueError:
        raise UsageError(usage)
    if len(args) != count:
        raise UsageError(usage)
    return args


def _int_arg(rest: str, usage: str) -> int:
    (value,) = _args(rest, 1, usage)
    try:
        return int(value)
    except ValueError:
        raise UsageError(usage)


def _float_arg(rest: str, usage: str) -> float:
    (value,) = _args(rest, 1, usage)
    try:
        return float(value)
    except ValueError:
        raise UsageError(usage)


def _bool_arg(rest: str, usage: str) -> bool:
    (value,) = _args(rest, 1, usage)
    if value not in {"0", "1"}:
        raise UsageError(usage)
    return value == "1"


class Prompt:
    def __init__(self, engine: ChatEngine, out: TextIO = sys.stdout):
        self.engine = engine
        self.out = out
        self.commands: Dict[str, Command] = {c.name: c for c in _COMMANDS}

    @property
    def context(self):
        return self.engine.context

    def handle(self, line: str) -> bool:
        """处理一行输入，返回 False 表示退出循环。"""

        line = line.strip()
        if not line:
            return True
        if not line.startswith("/"):
            name, handler, rest = "send", _send, line
        else:
            name, rest = split_command(line)
            command = self.commands.get(name)
            if command is None:
                logger.warning("Command: %s not found, try /help", name)
                return True
            handler = command.handler
        try:
            return handler(self, rest) is not False
        except StoreError as e:
            if e.code == "STORE_INIT_ERROR":
                raise
            logger.warning(e.message, extra={"extra": {**e.log_fields(), "command": name}})
            return True
        except BusinessError as e:
            logger.warning(e.message, extra={"extra": {**e.log_fields(), "command": name}})
            return True

    def run(self, read: Callable[[str], str] = input) -> None:
        while True:
            try:
                line = read(PROMPT)
            except (EOFError, KeyboardInterrupt):
                self.out.write("\n")
                break
            if not self.handle(line):
                break
        self.out.write("Good bye!\n")

    def write(self, text: str) -> None:
        self.out.write(text + "\n")

    def complete(self, text: str, state: int) -> Optional[str]:
        """readline 补全回调：补全行首的 "/命令名"，按命令表顺序返回第 state 个候选。"""

        if not text.startswith("/"):
            return None
        matches = [f"/{name}" for name in self.commands if f"/{name}".startswith(text)]
        return matches[state] if state < len(matches) else None


# ---- 命令实现 ----

def _send(p: Prompt, rest: str) -> None:
    p.engine.send(rest)


def _cmd_save(p: Prompt, rest: str) -> None:
    count = p.engine.persistence.save()
    p.write(f"saved {count} messages to chat {p.context.chat_id}")


def _cmd_autosave(p: Prompt, rest: str) -> None:
    count = p.engine.persistence.autosave()
    p.write(f"saved {count} messages to chat {p.context.chat_id}, autosave on")


def _cmd_persist(p: Prompt, rest: str) -> None:
    chat_id = p.engine.persistence.enable()
    p.write(f"persisting to chat {chat_id}")


def _cmd_models(p: Prompt, rest: str) -> None:
    for model_id in p.engine.list_models():
        p.write(model_id)


def _cmd_info(p: Prompt, rest: str) -> None:
    for key, value in p.context.describe().items():
        p.write(f"  {key}: {value}")


def _cmd_system(p: Prompt, rest: str) -> None:
    if not rest:
        raise UsageError("system <text>")
    p.context.history.append("system", rest)
    p.write("\033[0;36m[system]:\033[0m Injected")


def _cmd_file(p: Prompt, rest: str) -> None:
    usage = "file <path> <question>"
    path, _, question = rest.partition(" ")
    if not path or not question.strip():
        raise UsageError(usage)
    try:
        contents = Path(path).expanduser().read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ValidationError(code="FILE_READ_ERROR", message=f"Could not read file {path}: {e}")
    p.engine.send(f"{question.strip()} : \n ```\n{contents}\n```")


def _cmd_hist_list(p: Prompt, rest: str) -> None:
    p.write(f"messages: {len(p.context.history)}")
    p.context.history.render(p.out)


def _cmd_hist_del(p: Prompt, rest: str) -> None:
    index = _int_arg(rest, "hist-del <msg_idx>")
    if not p.context.history.delete(index):
        logger.warning("No message at index %d", index)


def _cmd_hist_clear(p: Prompt, rest: str) -> None:
    p.context.history.clear()


def _cmd_chat_list(p: Prompt, rest: str) -> None:
    for chat in p.engine.persistence.list_chats():
        marker = "*" if chat.id == p.context.chat_id else " "
        p.write(f"{marker}{chat.id}\t{chat.created_at:%Y-%m-%d %H:%M}\t{chat.model}\t{chat.name or ''}")


def _cmd_chat_load(p: Prompt, rest: str) -> None:
    chat_id = _int_arg(rest, "chat-load <chat_id>")
    if not p.engine.persistence.load_chat_history_by_id(chat_id):
        logger.warning("Chat %d not found", chat_id)
        return
    p.write(f"loaded chat {chat_id} ({len(p.context.history)} messages)")


def _cmd_chat_rename(p: Prompt, rest: str) -> None:
    usage = "chat-rename <chat_id> <name_of_chat>"
    raw_id, _, name = rest.partition(" ")
    name = name.strip()
    if not name:
        raise UsageError(usage)
    chat_id = _int_arg(raw_id, usage)
    if not p.engine.persistence.rename_chat(chat_id, name):
        logger.warning("Chat %d not found", chat_id)


def _cmd_chat_del(p: Prompt, rest: str) -> None:
    chat_id = _int_arg(rest, "chat-del <chat_id>")
    if not p.engine.persistence.delete_chat_by_id(chat_id):
        logger.warning("Chat %d not found", chat_id)


def _cmd_set_model(p: Prompt, rest: str) -> None:
    if not rest:
        raise UsageError("set-model <model_name>")
    p.context.set_model(rest)


def _flag_command(flag: str, usage: str) -> Callable[[Prompt, str], None]:
    def handler(p: Prompt, rest: str) -> None:
        p.context.set_flag(flag, _bool_arg(rest, usage))

    return handler


def _cmd_set_temperature(p: Prompt, rest: str) -> None:
    p.context.set_temperature(_float_arg(rest, "set-temperature <float>"))


def _cmd_set_top_p(p: Prompt, rest: str) -> None:
    p.context.set_top_p(_float_arg(rest, "set-top_p <float>"))


def _cmd_set_presence_penalty(p: Prompt, rest: str) -> None:
    p.context.set_presence_penalty(_float_arg(rest, "set-presence-pen <float>"))


def _cmd_set_n(p: Prompt, rest: str) -> None:
    p.context.set_n(_int_arg(rest, "set-n <int>"))


def _cmd_set_max_tokens(p: Prompt, rest: str) -> None:
    p.context.set_max_tokens(_int_arg(rest, "set-max-tokens <int>"))


def _cmd_exit(p: Prompt, rest: str) -> bool:
    return False


def _cmd_help(p: Prompt, rest: str) -> None:
    p.write("COMMANDS:\n")
    for command in _COMMANDS:
        p.write(f"  /{command.usage:<28} {command.help}")


_COMMANDS: List[Command] = [
    Command("save", _cmd_save, "save", "Save the current chat to the SQLite database"),
    Command("autosave", _cmd_autosave, "autosave", "Save now and store every future exchange"),
    Command("persist", _cmd_persist, "persist", "Start a new persisted chat"),
    Command("models", _cmd_models, "models", "List the models available to you"),
    Command("info", _cmd_info, "info", "Show the current options"),
    Command("system", _cmd_system, "system <text>", "Inject a system message"),
    Command("file", _cmd_file, "file <path> <question>", "Ask a question about a file"),
    Command("hist-list", _cmd_hist_list, "hist-list", "List the in-memory history"),
    Command("hist-del", _cmd_hist_del, "hist-del <msg_idx>", "Delete one message from memory"),
    Command("hist-clear", _cmd_hist_clear, "hist-clear", "Clear the in-memory history, not the database"),
    Command("chat-list", _cmd_chat_list, "chat-list", "List saved chats"),
    Command("chat-load", _cmd_chat_load, "chat-load <chat_id>", "Load a saved chat"),
    Command("chat-rename", _cmd_chat_rename, "chat-rename <id> <name>", "Rename a saved chat"),
    Command("chat-del", _cmd_chat_del, "chat-del <chat_id>", "Delete a saved chat and its messages"),
    Command("set-model", _cmd_set_model, "set-model <name>", "Switch the model"),
    Command("set-verbose", _flag_command("verbose", "set-verbose <1|0>"), "set-verbose <1|0>", "Print raw payloads and stream data"),
    Command("set-stream", _flag_command("stream", "set-stream <1|0>"), "set-stream <1|0>", "Use the streaming API"),
    Command("set-history", _flag_command("track_history", "set-history <1|0>"), "set-history <1|0>", "Send previous messages with each request"),
    Command("set-temperature", _cmd_set_temperature, "set-temperature <float>", "0.0 - 2.0, higher is more random"),
    Command("set-top_p", _cmd_set_top_p, "set-top_p <float>", "Nucleus sampling probability mass"),
    Command("set-presence-pen", _cmd_set_presence_penalty, "set-presence-pen <float>", "-2.0 - 2.0, penalize repeated tokens"),
    Command("set-n", _cmd_set_n, "set-n <int>", "Number of choices to generate"),
    Command("set-max-tokens", _cmd_set_max_tokens, "set-max-tokens <int>", "Maximum tokens to generate"),
    Command("help", _cmd_help, "help", "Show this message"),
    Command("exit", _cmd_exit, "exit", "Exit"),
]
