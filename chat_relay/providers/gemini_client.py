"""Gemini Provider 适配器。

使用 Generative Language API 的 generateContent 端点：
- URL: {base_url}/models/{model}:generateContent
- 认证: x-goog-api-key: <api_key>

历史消息与新消息一起放入 contents，生成参数放入 generationConfig。
一次调用即完成一轮对话，不在服务端保存会话。
"""

from typing import List, Optional

import httpx

from chat_relay.domain.exceptions import ApiError, ConfigurationError, NetworkError, RateLimitError
from chat_relay.domain.models import ChatReply, ChatUsage, ConversationTurn, GenerationConfig
from chat_relay.providers.registry import GEMINI_CONFIG, ProviderConfig

# 首个候选出现这些 finishReason 时视为被拦截，即使带有部分文本
BLOCKED_FINISH_REASONS = frozenset({"SAFETY", "RECITATION", "LANGUAGE"})


class GeminiClient:
    """Gemini Provider 客户端实现。"""

    name = "gemini"

    def __init__(self, cfg, api_key: Optional[str], provider_cfg: ProviderConfig = GEMINI_CONFIG):
        if not api_key:
            raise ConfigurationError(code="MISSING_API_KEY", message="GEMINI_API_KEY_CHLOE not set")
        self._settings = cfg
        self._api_key = api_key
        self._provider_cfg = provider_cfg
        self._model_cfg = provider_cfg.resolve_model(getattr(cfg, "model", None) or "chat")

    @property
    def model(self) -> str:
        return self._model_cfg.provider_model

    def send_message(
        self,
        history: List[ConversationTurn],
        message: str,
        generation_config: GenerationConfig,
    ) -> ChatReply:
        payload = self._build_payload(history, message, generation_config)
        base = getattr(self._settings, "gemini_base_url", None) or self._provider_cfg.base_url
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = client.post(
                    f"{base.rstrip('/')}/models/{self.model}:generateContent",
                    json=payload,
                    headers={
                        "x-goog-api-key": self._api_key,
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e) or type(e).__name__)
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message=self._error_message(resp) or "Gemini rate limit")
        if resp.status_code >= 400:
            raise ApiError(
                code="API_ERROR",
                message=self._error_message(resp) or f"Gemini API returned HTTP {resp.status_code}",
                upstream_status=resp.status_code,
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise ApiError(code="API_ERROR", message=f"Invalid JSON from Gemini: {e}")
        return self._parse_response(data)

    # ---- 辅助方法 ----

    def _build_payload(
        self,
        history: List[ConversationTurn],
        message: str,
        generation_config: GenerationConfig,
    ) -> dict:
        contents = list(history)
        contents.append({"role": "user", "parts": [{"text": message}]})
        return {
            "contents": contents,
            "generationConfig": {
                "maxOutputTokens": generation_config.max_output_tokens or self._model_cfg.max_tokens,
                "temperature": generation_config.temperature,
            },
        }

    def _parse_response(self, data: dict) -> ChatReply:
        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback")
            if feedback is not None:
                block_reason = (feedback or {}).get("blockReason") or "unknown"
                raise ApiError(code="RESPONSE_BLOCKED", message=f"Text not available. Prompt blocked: {block_reason}")
            return ChatReply(provider=self.name, model=self.model, text="", usage=self._parse_usage(data))

        first = candidates[0]
        finish_reason = first.get("finishReason")
        parts = (first.get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        if finish_reason in BLOCKED_FINISH_REASONS:
            raise ApiError(code="RESPONSE_BLOCKED", message=f"Candidate was blocked due to {finish_reason}")

        return ChatReply(
            provider=self.name,
            model=self.model,
            text=text,
            finish_reason=finish_reason,
            usage=self._parse_usage(data),
        )

    @staticmethod
    def _parse_usage(data: dict) -> Optional[ChatUsage]:
        usage_raw = data.get("usageMetadata")
        if not usage_raw:
            return None
        return ChatUsage(
            prompt_tokens=usage_raw.get("promptTokenCount", 0),
            completion_tokens=usage_raw.get("candidatesTokenCount", 0),
            total_tokens=usage_raw.get("totalTokenCount", 0),
        )

    @staticmethod
    def _error_message(resp) -> str:
        """取出 Gemini 错误体里的 message，取不到时退回原始文本。"""
        try:
            err = resp.json().get("error") or {}
            if err.get("message"):
                return err["message"]
        except (ValueError, AttributeError):
            pass
        return resp.text
