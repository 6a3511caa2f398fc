"""AISDK 实现层：凭证池、请求执行器、流式解码器与指标"""
from .loadbalancer import Credential, CredentialPool
from .metrics import SUCCESS, ProviderMetrics, MetricsSnapshot, MetricsCollector
from .executor import RequestDescriptor, BaseExecutor, RequestExecutor
from .stream import StreamState, StreamSession, StreamDecoder

__all__ = [
    "Credential",
    "CredentialPool",
    "SUCCESS",
    "ProviderMetrics",
    "MetricsSnapshot",
    "MetricsCollector",
    "RequestDescriptor",
    "BaseExecutor",
    "RequestExecutor",
    "StreamState",
    "StreamSession",
    "StreamDecoder",
]
