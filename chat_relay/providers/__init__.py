"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供各厂商的具体实现 (如 gemini_client)。
"""

from typing import Optional

from chat_relay.config.settings import settings
from chat_relay.domain.exceptions import ConfigurationError
from chat_relay.providers.base import ProviderClient
from chat_relay.providers.gemini_client import GeminiClient
from chat_relay.providers.registry import get_provider_config

# Provider 名称 -> 客户端实现
PROVIDER_CLIENTS = {
    "gemini": GeminiClient,
}


def create_provider(cfg=None, api_key: Optional[str] = None) -> ProviderClient:
    """根据配置创建 Provider 实例，api_key 缺省时取配置中的密钥。"""

    cfg = cfg or settings
    provider_name = getattr(cfg, "provider", None) or "gemini"
    try:
        provider_cfg = get_provider_config(provider_name)
    except KeyError:
        raise ConfigurationError(code="UNKNOWN_PROVIDER", message=f"Unknown provider: {provider_name!r}")
    client_cls = PROVIDER_CLIENTS[provider_cfg.name]
    return client_cls(cfg, api_key or getattr(cfg, "gemini_api_key", None), provider_cfg)
