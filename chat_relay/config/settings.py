"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。

注意：Provider 的 API 密钥不会在启动时校验，缺失时由每个 POST 请求各自失败。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("CHAT_RELAY_CONFIG_FILE")
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
    """Chat Relay 配置。"""

    # ---- Provider 相关配置 ----
    provider: str = Field(default="gemini", description="Provider 名称，目前仅支持 gemini")
    model: str = Field(
        default="chat",
        description="逻辑模型名，由 registry 映射为具体厂商模型",
    )
    gemini_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("gemini_api_key", "GEMINI_API_KEY_CHLOE", "GEMINI_API_KEY"),
        description="Gemini API 密钥",
    )
    gemini_base_url: Optional[str] = Field(
        default=None,
        description="Gemini API 基础URL，缺省时使用 registry 中的地址",
    )

    # ---- 生成参数（每个部署固定，请求方不可指定） ----
    max_output_tokens: int = Field(default=500, ge=1, description="最大输出 token 数")
    temperature: float = Field(default=0.9, ge=0.0, le=2.0, description="采样温度")

    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")
    sharpen_error_status: bool = Field(
        default=False,
        description="按错误类型返回 400/429/502 等状态码；关闭时所有错误统一返回 500",
    )

    # ---- 服务与日志 ----
    host: str = Field(default="127.0.0.1", description="监听地址")
    port: int = Field(default=8788, ge=0, le=65535, description="监听端口")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

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
