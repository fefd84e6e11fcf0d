"""HTTP 中继处理器。

把一次 HTTP 请求转换为一次 Provider 调用：

- OPTIONS：CORS 预检，直接返回 204。
- POST：解析 contents，最后一条作为新消息，其余作为历史，调用 Provider 并返回回复文本。
- 其他方法：405。

处理器与具体的 HTTP 服务器无关，只处理 HttpRequest / HttpResponse，
由 chat_relay.server 或其他运行环境负责收发。
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from chat_relay.config.settings import settings
from chat_relay.domain.exceptions import BusinessError, ConfigurationError
from chat_relay.domain.models import ChatPayload, ChatReply, GenerationConfig
from chat_relay.infrastructure.logging.logger import logger
from chat_relay.providers import create_provider
from chat_relay.providers.base import ProviderClient


CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

GENERIC_ERROR_MESSAGE = "An error occurred"

ProviderFactory = Callable[[Any, Optional[str]], ProviderClient]


@dataclass
class HttpRequest:
    method: str
    body: bytes = b""
    path: str = "/"
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class HttpResponse:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def json(self) -> Any:
        return json.loads(self.body)


class ChatRelayHandler:
    """对话中继处理器。

    Args:
        cfg: 配置对象，需提供 gemini_api_key / max_output_tokens / temperature /
            sharpen_error_status 等字段。
        provider_factory: (cfg, api_key) -> ProviderClient，默认按配置创建 Gemini 客户端。
    """

    def __init__(self, cfg=None, provider_factory: Optional[ProviderFactory] = None):
        self._settings = cfg or settings
        self._provider_factory = provider_factory or create_provider

    @property
    def generation_config(self) -> GenerationConfig:
        return GenerationConfig(
            max_output_tokens=getattr(self._settings, "max_output_tokens", 500),
            temperature=getattr(self._settings, "temperature", 0.9),
        )

    def handle(self, request: HttpRequest) -> HttpResponse:
        method = (request.method or "").upper()
        if method == "OPTIONS":
            return HttpResponse(status=204, headers=dict(CORS_HEADERS))
        if method != "POST":
            return HttpResponse(
                status=405,
                headers={**CORS_HEADERS, "Content-Type": "text/plain; charset=utf-8"},
                body=b"Method not allowed",
            )

        try:
            payload = ChatPayload.from_json(request.body)
            reply = self.relay(payload)
        except Exception as e:
            return self._error_response(e)

        usage = reply.usage
        logger.info("Chat relayed", extra={"extra": {
            "provider": reply.provider,
            "model": reply.model,
            "history_turns": len(payload.history),
            "finish_reason": reply.finish_reason,
            "prompt_tokens": usage.prompt_tokens if usage else None,
            "completion_tokens": usage.completion_tokens if usage else None,
            "total_tokens": usage.total_tokens if usage else None,
        }})
        return self._json({"response": reply.text}, status=200)

    def relay(self, payload: ChatPayload) -> ChatReply:
        """把一次对话交给 Provider，返回其回复。"""
        api_key = getattr(self._settings, "gemini_api_key", None)
        if not api_key:
            raise ConfigurationError(code="MISSING_API_KEY", message="API key is not configured")
        provider = self._provider_factory(self._settings, api_key)
        return provider.send_message(payload.history, payload.latest_message, self.generation_config)

    # ---- 响应构造 ----

    def _error_response(self, exc: Exception) -> HttpResponse:
        details = str(exc) or type(exc).__name__
        if isinstance(exc, BusinessError):
            status = exc.http_status if getattr(self._settings, "sharpen_error_status", False) else 500
            logger.error(f"Chat relay failed: {details}", extra={"extra": {
                "code": exc.code,
                "status": status,
                **exc.extra,
            }})
        else:
            status = 500
            logger.exception(f"Chat relay failed: {details}", extra={"extra": {
                "code": "INTERNAL_ERROR",
                "status": status,
            }})
        return self._json({"error": GENERIC_ERROR_MESSAGE, "details": details}, status=status)

    @staticmethod
    def _json(data: Dict[str, Any], status: int) -> HttpResponse:
        body = json.dumps(data, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
        return HttpResponse(
            status=status,
            headers={**CORS_HEADERS, "Content-Type": "application/json"},
            body=body,
        )
