"""配置模型：调用选项、提供商配置与 SDK 配置"""
import json
import datetime
from dataclasses import dataclass, asdict, field, fields
from typing import Optional, Dict, Any, List, Mapping, Union

from llm_aisdk.core.exceptions import ConfigurationError

Duration = Union[int, float, datetime.timedelta]

DEFAULT_TIMEOUT = 120.0
DEFAULT_STREAM_RETURN_INTERVAL_TIMEOUT = 30.0
DEFAULT_EMPTY_MESSAGES_LIMIT = 300


def to_seconds(value: Optional[Duration]) -> Optional[float]:
    """将 timedelta / 数字统一为秒"""
    if value is None:
        return None
    if isinstance(value, datetime.timedelta):
        return value.total_seconds()
    return float(value)


@dataclass
class CallOptions:
    """
    单次调用选项：由多层配置按顺序合并而来，后者覆盖前者

    - timeout: 整体截止时间（秒）
    - stream_return_interval_timeout: 两次流事件之间允许的最长静默（秒）
    - body: 请求体（任意可 JSON 序列化对象）
    - headers: 额外请求头
    - empty_messages_limit: 流式连续空消息的容忍上限
    """
    timeout: Optional[float] = None
    stream_return_interval_timeout: Optional[float] = None
    body: Any = None
    headers: Optional[Dict[str, str]] = None
    empty_messages_limit: Optional[int] = None

    @classmethod
    def defaults(cls) -> "CallOptions":
        return cls(
            timeout=DEFAULT_TIMEOUT,
            stream_return_interval_timeout=DEFAULT_STREAM_RETURN_INTERVAL_TIMEOUT,
            empty_messages_limit=DEFAULT_EMPTY_MESSAGES_LIMIT,
        )

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典，过滤掉 None 值，以便进行合并"""
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def merge(cls, *layers: Optional[Union["CallOptions", Mapping[str, Any]]]) -> "CallOptions":
        """
        按顺序合并多层选项

        未识别的键被忽略；None 值不覆盖已有值；headers 按键合并。
        """
        known = {f.name for f in fields(cls)}
        merged: Dict[str, Any] = {}
        for layer in layers:
            if layer is None:
                continue
            data = layer.to_dict() if isinstance(layer, CallOptions) else layer
            for key, value in data.items():
                if key not in known or value is None:
                    continue
                if key == "headers":
                    merged["headers"] = {**merged.get("headers", {}), **value}
                elif key in ("timeout", "stream_return_interval_timeout"):
                    merged[key] = to_seconds(value)
                else:
                    merged[key] = value
        return cls(**merged)


@dataclass
class ProviderConfig:
    """单个提供商的配置"""
    base_url: str
    api_keys: List[str] = field(default_factory=list)
    timeout: Optional[float] = None
    stream_return_interval_timeout: Optional[float] = None

    def validate(self, provider: str = "") -> None:
        if not self.base_url:
            raise ConfigurationError(f"提供商 '{provider}' 缺少 base_url")
        if not self.api_keys or not any(k and k.strip() for k in self.api_keys):
            raise ConfigurationError(f"提供商 '{provider}' 缺少 api_keys")

    def call_defaults(self) -> Dict[str, Any]:
        """提供商级别的默认调用选项"""
        return {
            "timeout": self.timeout,
            "stream_return_interval_timeout": self.stream_return_interval_timeout,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class SDKConfig:
    """SDK 配置：提供商 ID -> ProviderConfig"""
    providers: Dict[str, ProviderConfig] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SDKConfig":
        raw = data.get("providers", {}) if isinstance(data, Mapping) else None
        if not isinstance(raw, Mapping):
            raise ConfigurationError("配置缺少 providers 映射")
        providers = {}
        for name, item in raw.items():
            if not isinstance(item, Mapping):
                raise ConfigurationError(f"提供商 '{name}' 的配置必须是对象")
            api_keys = item.get("api_keys")
            if isinstance(api_keys, str):
                api_keys = [k.strip() for k in api_keys.split(",") if k.strip()]
            providers[name] = ProviderConfig(
                base_url=item.get("base_url", ""),
                api_keys=list(api_keys or []),
                timeout=to_seconds(item.get("timeout")),
                stream_return_interval_timeout=to_seconds(item.get("stream_return_interval_timeout")),
            )
        return cls(providers=providers)

    @classmethod
    def from_json_file(cls, path: str) -> "SDKConfig":
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"无法读取配置文件 {path}: {e}") from e
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        return {"providers": {name: cfg.to_dict() for name, cfg in self.providers.items()}}
