"""AISDK: 多厂商大模型 API 统一调用层"""
from . import core
from . import impl
from . import providers

from .core import (
    ErrorKind,
    SDKError,
    ErrorRecord,
    ConfigurationError,
    ProviderAPIError,
    classify,
    CallOptions,
    ProviderConfig,
    SDKConfig,
    CallContext,
    Response,
    StreamChunk,
    ModelType,
    ModelFeature,
    IExecutorHooks,
    LoggingHooks,
)
from .impl import CredentialPool, MetricsCollector, RequestExecutor, StreamDecoder, StreamSession
from .providers import ProviderRegistry, OpenAIProvider, DeepSeekProvider, AliBLProvider
from .client import SDKClient

__version__ = "0.1.0"

__all__ = [
    "core",
    "impl",
    "providers",
    "SDKClient",
    "ErrorKind",
    "SDKError",
    "ErrorRecord",
    "ConfigurationError",
    "ProviderAPIError",
    "classify",
    "CallOptions",
    "ProviderConfig",
    "SDKConfig",
    "CallContext",
    "Response",
    "StreamChunk",
    "ModelType",
    "ModelFeature",
    "IExecutorHooks",
    "LoggingHooks",
    "CredentialPool",
    "MetricsCollector",
    "RequestExecutor",
    "StreamDecoder",
    "StreamSession",
    "ProviderRegistry",
    "OpenAIProvider",
    "DeepSeekProvider",
    "AliBLProvider",
]
