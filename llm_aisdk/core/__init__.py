"""AISDK 核心接口层：异常、配置、上下文、结果信封与能力接口"""
from .exceptions import (
    ErrorKind,
    SDKError,
    ErrorRecord,
    ConfigurationError,
    InstanceCreationError,
    ProviderNotSupportedError,
    ModelTypeNotSupportedError,
    ModelNotSupportedError,
    MethodNotSupportedError,
    CompletionStreamNotSupportedError,
    TooManyEmptyStreamMessagesError,
    StreamReturnIntervalTimeoutError,
    CanceledError,
    DeadlineExceededError,
    StreamConsumedError,
    ProviderAPIError,
    classify,
    unwrap,
    cause,
    request_id,
    is_kind,
)
from .config import CallOptions, ProviderConfig, SDKConfig
from .context import CallContext
from .models import Response, StreamChunk, StreamStats
from .provider import (
    ModelType,
    ModelFeature,
    SupportedModels,
    IProvider,
    IModelLister,
    IChatCompletion,
    IChatCompletionStream,
)
from .hooks import IExecutorHooks, CompositeExecutorHooks, LoggingHooks, UsageHooks

__all__ = [
    "ErrorKind",
    "SDKError",
    "ErrorRecord",
    "ConfigurationError",
    "InstanceCreationError",
    "ProviderNotSupportedError",
    "ModelTypeNotSupportedError",
    "ModelNotSupportedError",
    "MethodNotSupportedError",
    "CompletionStreamNotSupportedError",
    "TooManyEmptyStreamMessagesError",
    "StreamReturnIntervalTimeoutError",
    "CanceledError",
    "DeadlineExceededError",
    "StreamConsumedError",
    "ProviderAPIError",
    "classify",
    "unwrap",
    "cause",
    "request_id",
    "is_kind",
    "CallOptions",
    "ProviderConfig",
    "SDKConfig",
    "CallContext",
    "Response",
    "StreamChunk",
    "StreamStats",
    "ModelType",
    "ModelFeature",
    "SupportedModels",
    "IProvider",
    "IModelLister",
    "IChatCompletion",
    "IChatCompletionStream",
    "IExecutorHooks",
    "CompositeExecutorHooks",
    "LoggingHooks",
    "UsageHooks",
]
