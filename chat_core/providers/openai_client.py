"""OpenAI HTTP 传输层。

本模块负责：

1. 组装鉴权请求头（Bearer token 与可选的 OpenAI-Organization）。
2. 发送阻塞式 GET/POST，校验状态码与 Content-Type 后解析 JSON。
3. 发送流式 POST，把响应体按分块同步交给调用方的 on_chunk 回调。

请求体由 session.payload 预先序列化为 JSON 文本，这里只负责发送。
不做任何重试。
"""

import json
from typing import Any, Dict, List, Optional

import httpx

from chat_core.domain.exceptions import ApiError, NetworkError, ValidationError
from chat_core.infrastructure.logging.logger import logger
from chat_core.providers.base import ChunkHandler


CHAT_COMPLETIONS_PATH = "/chat/completions"
MODELS_PATH = "/models"


class OpenAIClient:
    """OpenAI 兼容接口客户端。

    - name: Provider 名称（供日志使用）。
    - settings: 需要 openai_base_url、http_timeout 等字段。
    - api_key / organization: 来自 SessionContext 的凭据，缺省时回落到 settings。
    """

    name = "openai"

    def __init__(self, settings, api_key: Optional[str] = None, organization: Optional[str] = None):
        self._settings = settings
        self._api_key = api_key or getattr(settings, "openai_api_key", None)
        self._organization = organization or getattr(settings, "openai_organization", None)

    @property
    def base_url(self) -> str:
        return (getattr(self._settings, "openai_base_url", None) or "https://api.openai.com/v1").rstrip("/")

    def _headers(self) -> Dict[str, str]:
        if not self._api_key:
            # 配置缺失走 ValidationError，方便上层统一处理
            raise ValidationError(code="MISSING_API_KEY", message="OPENAI_API_KEY not set")
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }
        if self._organization:
            headers["OpenAI-Organization"] = self._organization
        return headers

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self._settings.http_timeout, trust_env=False)

    @staticmethod
    def _is_json(resp) -> bool:
        content_type = resp.headers.get("content-type", "")
        return "json" in content_type.lower()

    def _decode(self, resp) -> Dict[str, Any]:
        if resp.status_code != 200 or not self._is_json(resp):
            raise ApiError(code="API_ERROR", message=resp.text, http_status=resp.status_code)
        try:
            return resp.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise ApiError(code="INVALID_JSON", message=str(e), http_status=resp.status_code)

    def post_json(self, path: str, payload: str) -> Dict[str, Any]:
        """发送阻塞式 POST，要求 200 + JSON 响应。"""

        headers = self._headers()
        logger.debug("POST %s%s", self.base_url, path)
        try:
            with self._client() as client:
                resp = client.post(f"{self.base_url}{path}", content=payload, headers=headers)
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        return self._decode(resp)

    def get_json(self, path: str) -> Dict[str, Any]:
        headers = self._headers()
        try:
            with self._client() as client:
                resp = client.get(f"{self.base_url}{path}", headers=headers)
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        return self._decode(resp)

    def stream_post(self, path: str, payload: str, on_chunk: ChunkHandler) -> bool:
        """流式 POST。

        每个响应分块都会交给 on_chunk，即使状态码表示失败（这样服务端的
        错误 JSON 也能被消费者看到）。on_chunk 返回值小于分块长度时中止传输。

        Returns:
            最终状态码在 200..300 之间时为 True。
        """

        headers = self._headers()
        try:
            with self._client() as client:
                with client.stream(
                    "POST",
                    f"{self.base_url}{path}",
                    content=payload,
                    headers=headers,
                ) as resp:
                    for chunk in resp.iter_bytes():
                        if not chunk:
                            continue
                        consumed = on_chunk(chunk)
                        if consumed != len(chunk):
                            logger.warning("Stream handler consumed %d of %d bytes, aborting transfer", consumed, len(chunk))
                            return False
                    status = resp.status_code
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e))
        if not 200 <= status <= 300:
            logger.info("Stream request finished with status %d", status)
            return False
        return True

    def chat(self, payload: str) -> Dict[str, Any]:
        return self.post_json(CHAT_COMPLETIONS_PATH, payload)

    def chat_stream(self, payload: str, on_chunk: ChunkHandler) -> bool:
        return self.stream_post(CHAT_COMPLETIONS_PATH, payload, on_chunk)

    def list_models(self) -> List[str]:
        """列出当前 API key 可用的模型 id。"""

        data = self.get_json(MODELS_PATH)
        ids: List[str] = []
        for item in data.get("data") or []:
            if isinstance(item, dict) and isinstance(item.get("id"), str):
                ids.append(item["id"])
        return ids
