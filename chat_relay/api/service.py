"""对外 API 服务模块。

提供简化的函数接口供上层应用调用，不经过 HTTP 也能使用同一条中继流程。
"""

from typing import Any, Dict, List, Optional

from chat_relay.api.handler import ChatRelayHandler, HttpRequest, HttpResponse
from chat_relay.config.settings import settings
from chat_relay.domain.models import ChatPayload
from chat_relay.infrastructure.logging.logger import logger


_handler: Optional[ChatRelayHandler] = None


def get_default_handler() -> ChatRelayHandler:
    """获取默认的中继处理器实例（单例）。"""
    global _handler
    if _handler is None:
        _handler = ChatRelayHandler(settings)
    return _handler


def handle_request(request: HttpRequest) -> HttpResponse:
    """用默认处理器处理一次 HTTP 请求。"""
    return get_default_handler().handle(request)


def relay_chat(contents: List[Dict[str, Any]], handler: Optional[ChatRelayHandler] = None) -> str:
    """发送一组对话并返回回复文本。

    Args:
        contents: 与 HTTP 请求体中 contents 相同结构的消息列表，最后一条为新消息。
        handler: 可选的处理器，不提供时使用默认处理器。

    Returns:
        Provider 回复的纯文本。

    Raises:
        各种 domain.exceptions 中定义的异常
    """
    try:
        reply = (handler or get_default_handler()).relay(ChatPayload.from_contents(contents))
    except Exception as e:
        logger.error(f"Chat failed: {e}", extra={"extra": {
            "error": str(e),
        }})
        raise
    return reply.text
