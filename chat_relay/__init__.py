"""Chat Relay 顶层包。

该包提供一个把浏览器聊天请求转发给 Gemini 的 HTTP 端点，
包括配置加载、领域模型、Provider 适配、HTTP 处理器与服务器入口。
"""

from chat_relay.api.handler import ChatRelayHandler, HttpRequest, HttpResponse
from chat_relay.api.service import relay_chat

__all__ = ["ChatRelayHandler", "HttpRequest", "HttpResponse", "relay_chat"]
