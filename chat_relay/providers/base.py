"""Provider 抽象接口。

中继处理器不直接依赖具体厂商的 HTTP API，而是依赖此协议：

- 每个厂商实现一个 ProviderClient（如 GeminiClient）。
- 负责：把历史消息与新消息转成具体 API 请求，并把响应 JSON 解析为 ChatReply。

这样可以在不改处理器代码的前提下替换或新增厂商。
"""

from typing import List, Protocol

from chat_relay.domain.models import ChatReply, ConversationTurn, GenerationConfig


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    实现者需要提供：
    - name: Provider 名称，用于日志。
    - send_message(...): 以给定历史发送一条新消息，同步等待完整回复。
    """

    name: str

    def send_message(
        self,
        history: List[ConversationTurn],
        message: str,
        generation_config: GenerationConfig,
    ) -> ChatReply:
        ...
