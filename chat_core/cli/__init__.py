"""命令行入口。"""

import sys
from pathlib import Path

from chat_core.config.settings import settings
from chat_core.domain.exceptions import StoreError
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers import create_transport
from chat_core.session import ChatEngine, PersistenceBridge, SessionContext
from chat_core.cli.prompt import Prompt


def _enable_line_editing(prompt: Prompt, history_file: Path):
    """启用输入历史与 "/命令" 的 Tab 补全，返回 readline 模块；平台没有 readline 时返回 None。"""

    try:
        import readline
    except ImportError:
        # Windows 上没有 readline，只是没有行编辑
        logger.debug("readline not available, line editing disabled")
        return None
    readline.set_completer(prompt.complete)
    readline.set_completer_delims(" \t\n")
    if "libedit" in (readline.__doc__ or ""):
        readline.parse_and_bind("bind ^I rl_complete")
    else:
        readline.parse_and_bind("tab: complete")
    if history_file.exists():
        try:
            readline.read_history_file(str(history_file))
        except OSError as e:
            logger.warning("Could not load input history %s: %s", history_file, e)
    return readline


def _save_line_history(readline, history_file: Path) -> None:
    try:
        readline.write_history_file(str(history_file))
    except OSError as e:
        logger.warning("Could not save input history %s: %s", history_file, e)


def main() -> int:
    ctx = SessionContext.from_settings(settings)
    if not ctx.api_key:
        logger.error("OPENAI_API_KEY not set (environment, .env or config.yaml)")
        return 1
    transport = create_transport(api_key=ctx.api_key, organization=ctx.organization)
    engine = ChatEngine(ctx, transport, persistence=PersistenceBridge(ctx, settings.db_path))
    prompt = Prompt(engine)
    history_file = Path(settings.history_file).expanduser()
    readline = _enable_line_editing(prompt, history_file)
    try:
        if ctx.flags.persist:
            engine.persistence.enable()
        prompt.run()
    except StoreError as e:
        # 持久化一旦被请求就是必需的，建表失败直接退出
        logger.critical(e.message, extra={"extra": e.log_fields()})
        return 1
    finally:
        if readline is not None:
            _save_line_history(readline, history_file)
        ctx.close()
    return 0


__all__ = ["main", "Prompt"]


if __name__ == "__main__":
    sys.exit(main())
