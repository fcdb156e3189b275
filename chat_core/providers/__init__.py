"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Transport 抽象接口 (base)。
- 提供 OpenAI 兼容接口的 httpx 实现 (openai_client)。
"""

from typing import Optional

from chat_core.config.settings import settings
from chat_core.providers.base import Transport
from chat_core.providers.openai_client import OpenAIClient


def create_transport(
    api_key: Optional[str] = None,
    organization: Optional[str] = None,
    cfg=None,
) -> Transport:
    """根据凭据创建 Transport 实例，缺省配置取全局 settings。"""

    return OpenAIClient(cfg or settings, api_key=api_key, organization=organization)
