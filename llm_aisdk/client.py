"""SDK 客户端：统一入口，组装注册表、执行器、流式解码器与指标"""
from typing import Any, Dict, Iterable, Mapping, Optional, Union

import httpx

from llm_aisdk.core.config import CallOptions, SDKConfig
from llm_aisdk.core.context import CallContext
from llm_aisdk.core.exceptions import (
    CompletionStreamNotSupportedError,
    ErrorRecord,
    ModelNotSupportedError,
    ModelTypeNotSupportedError,
    SDKError,
    classify,
)
from llm_aisdk.core.hooks import CompositeExecutorHooks, IExecutorHooks, LoggingHooks, UsageHooks
from llm_aisdk.core.models import Response
from llm_aisdk.core.provider import ModelType, SupportedModels
from llm_aisdk.impl.executor import RequestExecutor
from llm_aisdk.impl.metrics import MetricsCollector, MetricsSnapshot
from llm_aisdk.impl.stream import StreamDecoder, StreamSession
from llm_aisdk.providers import BUILTIN_PROVIDERS, ProviderRegistry
from llm_aisdk.util.logger import get_logger

_logger = get_logger("AISDK.Client")


class SDKClient:
    """
    SDK 客户端：所有调用的统一入口

    所有失败都以 ErrorRecord 抛出，可通过 kind / request_id / root_cause() 诊断。

    示例:
        with SDKClient({"providers": {"deepseek": {"base_url": "https://api.deepseek.com", "api_keys": ["sk-xxx"]}}}) as client:
            resp = client.create_chat_completion("deepseek", {"model": "deepseek-chat", "messages": [...]})
            for chunk in client.create_chat_completion_stream("deepseek", {...}):
                ...
    """

    def __init__(
        self,
        config: Union[SDKConfig, Mapping[str, Any]],
        hooks: Optional[Union[IExecutorHooks, Iterable[IExecutorHooks]]] = None,
        http_client: Optional[httpx.Client] = None,
        defaults: Optional[CallOptions] = None,
    ):
        """
        Args:
            config: SDKConfig 或 {"providers": {...}} 字典
            hooks: 额外的执行器钩子（单个或列表），LoggingHooks 始终在最前
            http_client: 自定义 httpx.Client（代理、测试用 MockTransport 等）
            defaults: 执行器级别的默认调用选项
        """
        self.config = config if isinstance(config, SDKConfig) else SDKConfig.from_dict(config)
        self.usage = UsageHooks()

        extra = [] if hooks is None else ([hooks] if not isinstance(hooks, (list, tuple)) else list(hooks))
        self.hooks = CompositeExecutorHooks([LoggingHooks(), self.usage] + extra)
        self.metrics = MetricsCollector()
        self.executor = RequestExecutor(metrics=self.metrics, hooks=self.hooks, http_client=http_client, defaults=defaults)
        self.stream_decoder = StreamDecoder(metrics=self.metrics, hooks=self.hooks, http_client=http_client, defaults=defaults)

        self.registry = ProviderRegistry()
        for provider_cls in BUILTIN_PROVIDERS:
            self.registry.register(provider_cls(self.executor, self.stream_decoder))
        try:
            self.registry.initialize(self.config)
        except SDKError as e:
            self.close()
            raise classify(e) from e
        _logger.info(f"🚀 SDKClient 已就绪 | 提供商: {list(self.config.providers)}")

    def __enter__(self) -> "SDKClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ---------- 校验 ----------

    def _check_model(self, provider: str, request: Mapping[str, Any], model_type: ModelType = ModelType.CHAT) -> None:
        models = self.registry.get_supported_models(provider)
        if model_type not in models:
            raise ModelTypeNotSupportedError(f"提供商 '{provider}' 不支持模型类型 '{model_type.value}'")
        model = request.get("model")
        if model not in models[model_type]:
            raise ModelNotSupportedError(f"提供商 '{provider}' 不支持模型 '{model}'")

    # ---------- 公共 API ----------

    def list_models(self, provider: str, ctx: Optional[CallContext] = None, **opts: Any) -> Response:
        """
        列出提供商的模型

        Raises:
            ErrorRecord: PROVIDER_NOT_SUPPORTED / METHOD_NOT_SUPPORTED 及调用失败
        """
        try:
            return self.registry.list_models(provider, ctx, **opts)
        except ErrorRecord:
            raise
        except SDKError as e:
            raise classify(e) from e

    def create_chat_completion(self, provider: str, request: Dict[str, Any], ctx: Optional[CallContext] = None, **opts: Any) -> Response:
        """
        单次聊天补全

        Args:
            provider: 提供商 ID
            request: 聊天请求体（原样透传）
            ctx: 调用上下文
            **opts: 单次调用选项（timeout / headers / body 等）

        Raises:
            ErrorRecord: 请求体带 stream=True 时为 COMPLETION_STREAM_NOT_SUPPORTED
        """
        try:
            if request.get("stream"):
                raise CompletionStreamNotSupportedError("stream=True 请使用 create_chat_completion_stream")
            self._check_model(provider, request)
            response = self.registry.create_chat_completion(provider, request, ctx, **opts)
        except ErrorRecord:
            raise
        except SDKError as e:
            raise classify(e) from e
        self.usage.add(provider, response.usage)
        return response

    def create_chat_completion_stream(self, provider: str, request: Dict[str, Any], ctx: Optional[CallContext] = None, **opts: Any) -> StreamSession:
        """
        流式聊天补全

        Returns:
            StreamSession：迭代得到 StreamChunk，最后一个 finished=True
        """
        try:
            self._check_model(provider, request)
            return self.registry.create_chat_completion_stream(provider, request, ctx, **opts)
        except ErrorRecord:
            raise
        except SDKError as e:
            raise classify(e) from e

    def get_supported_models(self, provider: str) -> SupportedModels:
        try:
            return self.registry.get_supported_models(provider)
        except SDKError as e:
            raise classify(e) from e

    def get_metrics(self) -> MetricsSnapshot:
        return self.metrics.snapshot()

    def pull_usage(self) -> Dict[str, Dict[str, int]]:
        """拉取累加的 token 用量快照并重置"""
        return self.usage.pull_usage()

    def close(self) -> None:
        self.executor.close()
        self.stream_decoder.close()
