"""配置管理模块。

支持从 .env、config.yaml 以及环境变量加载配置。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CHAT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """客户端配置（使用 Pydantic）。"""

    # ---- API 相关配置 ----
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥")
    openai_organization: Optional[str] = Field(
        default=None,
        description="可选的组织 ID，对应 OpenAI-Organization 请求头",
    )
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="API 基础URL",
    )
    default_model: str = Field(default="gpt-3.5-turbo", description="启动时使用的模型")
    http_timeout: float = Field(default=60.0, ge=1.0, description="HTTP 超时时间（秒）")

    # ---- 持久化 ----
    db_path: str = Field(default="chat-hist.db", description="SQLite 数据库文件路径")

    # ---- 命令行 ----
    history_file: str = Field(default="history.txt", description="命令行输入历史文件")

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_level: str = Field(default="INFO", description="文件日志级别")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    # ---- 会话开关的初始值 ----
    verbose: bool = Field(default=False, description="打印原始请求与流式数据")
    track_history: bool = Field(default=True, description="请求中携带历史消息")
    persist: bool = Field(default=False, description="每轮对话自动写入数据库")
    stream: bool = Field(default=True, description="使用流式接口")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("openai_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v!r}")
        return level

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
