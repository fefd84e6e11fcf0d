"""统一的对话与结果数据模型。

本模块定义了中继请求在 HTTP 层与 Provider 之间共享的标准数据结构：

- ChatPayload: 解析后的请求体，最后一条为新消息，其余为历史。
- GenerationConfig: 固定的生成参数（最大输出长度、温度）。
- ChatReply: 从 Provider 解析后的统一响应结果。

历史消息保持请求中的原始 JSON 结构（role + parts，parts 中可含非文本片段），
由 Provider 适配器原样转发，这里不做重新建模。
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from chat_relay.domain.exceptions import ValidationError

# 一条对话消息的原始 JSON，如 {"role": "user", "parts": [{"text": "..."}]}
ConversationTurn = Dict[str, Any]


@dataclass(frozen=True)
class ChatPayload:
    """一次请求的对话内容。

    contents 至少包含一条消息：最后一条是新的用户消息，之前的全部作为历史。
    """

    contents: List[ConversationTurn]

    @classmethod
    def from_json(cls, body: bytes | str) -> "ChatPayload":
        try:
            data = json.loads(body)
        except (ValueError, TypeError) as e:
            raise ValidationError(code="BAD_REQUEST", message=f"Invalid JSON body: {e}")
        if not isinstance(data, dict):
            raise ValidationError(code="BAD_REQUEST", message="Request body must be a JSON object")
        return cls.from_contents(data.get("contents"))

    @classmethod
    def from_contents(cls, contents: Any) -> "ChatPayload":
        if not isinstance(contents, list) or not contents:
            raise ValidationError(code="BAD_REQUEST", message="contents must be a non-empty array")
        return cls(contents=list(contents))

    @property
    def history(self) -> List[ConversationTurn]:
        return self.contents[:-1]

    @property
    def latest_message(self) -> str:
        """最后一条消息第一个片段的文本。"""
        try:
            text = self.contents[-1]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ValidationError(
                code="BAD_REQUEST",
                message=f"last turn has no parts[0].text: {type(e).__name__}: {e}",
            )
        if not isinstance(text, str):
            raise ValidationError(code="BAD_REQUEST", message="parts[0].text of the last turn must be a string")
        return text


@dataclass(frozen=True)
class GenerationConfig:
    """生成参数，由部署配置决定。"""

    max_output_tokens: int = 500
    temperature: float = 0.9


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatReply:
    """一次对话调用的最终结果。

    - provider: Provider 名（如 "gemini"）。
    - model: 实际调用的厂商模型名。
    - text: 回复的纯文本。
    - usage: token 统计，写入请求日志。
    """

    provider: str
    model: str
    text: str
    finish_reason: Optional[str] = None
    usage: Optional[ChatUsage] = None
