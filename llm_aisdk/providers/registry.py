"""提供商注册表：显式注册适配器，按能力接口分发调用"""
import threading
from typing import Any, Dict, List, Optional

from llm_aisdk.core.config import SDKConfig
from llm_aisdk.core.context import CallContext
from llm_aisdk.core.exceptions import (
    CompletionStreamNotSupportedError,
    MethodNotSupportedError,
    ProviderNotSupportedError,
)
from llm_aisdk.core.models import Response
from llm_aisdk.core.provider import IChatCompletion, IChatCompletionStream, IModelLister, IProvider, SupportedModels
from llm_aisdk.util.logger import get_logger

_logger = get_logger("AISDK.Registry")


class ProviderRegistry:
    """
    提供商注册表：进程启动时构造，按引用传给所有使用方

    适配器只实现自己支持的能力接口；缺失的能力由注册表统一抛出
    MethodNotSupportedError（流式为 CompletionStreamNotSupportedError）。
    """

    def __init__(self):
        self._providers: Dict[str, IProvider] = {}
        self._lock = threading.Lock()

    def register(self, provider: IProvider) -> IProvider:
        """
        注册适配器，同 ID 重复注册时后者覆盖前者

        Returns:
            注册的适配器
        """
        with self._lock:
            if provider.provider_id in self._providers:
                _logger.warning(f"⚠️ 提供商 '{provider.provider_id}' 重复注册，已覆盖")
            self._providers[provider.provider_id] = provider
        return provider

    def get(self, provider_id: str) -> IProvider:
        """
        获取适配器

        Raises:
            ProviderNotSupportedError: 提供商未注册
        """
        with self._lock:
            provider = self._providers.get(provider_id)
        if provider is None:
            raise ProviderNotSupportedError(f"提供商 '{provider_id}' 未注册. 已注册: {self.provider_ids}")
        return provider

    def __getitem__(self, provider_id: str) -> IProvider:
        return self.get(provider_id)

    def __contains__(self, provider_id: str) -> bool:
        with self._lock:
            return provider_id in self._providers

    @property
    def provider_ids(self) -> List[str]:
        with self._lock:
            return list(self._providers)

    def initialize(self, config: SDKConfig) -> None:
        """
        按配置初始化各提供商；未注册的提供商配置会被忽略

        Raises:
            ConfigurationError: 已注册提供商的配置非法（如缺少 api_keys）
        """
        for provider_id, provider_config in config.providers.items():
            if provider_id not in self:
                _logger.warning(f"⚠️ 配置中的提供商 '{provider_id}' 未注册，已跳过")
                continue
            self.get(provider_id).initialize_provider_config(provider_config)

    def get_supported_models(self, provider_id: str) -> SupportedModels:
        return self.get(provider_id).get_supported_models()

    # ---------- 能力分发 ----------

    def list_models(self, provider_id: str, ctx: Optional[CallContext] = None, **opts: Any) -> Response:
        provider = self.get(provider_id)
        if not isinstance(provider, IModelLister):
            raise MethodNotSupportedError(f"提供商 '{provider_id}' 不支持 list_models")
        return provider.list_models(ctx, **opts)

    def create_chat_completion(self, provider_id: str, request: Dict[str, Any], ctx: Optional[CallContext] = None, **opts: Any) -> Response:
        provider = self.get(provider_id)
        if not isinstance(provider, IChatCompletion):
            raise MethodNotSupportedError(f"提供商 '{provider_id}' 不支持 create_chat_completion")
        return provider.create_chat_completion(request, ctx, **opts)

    def create_chat_completion_stream(self, provider_id: str, request: Dict[str, Any], ctx: Optional[CallContext] = None, **opts: Any):
        provider = self.get(provider_id)
        if not isinstance(provider, IChatCompletionStream):
            raise CompletionStreamNotSupportedError(f"提供商 '{provider_id}' 不支持流式聊天")
        return provider.create_chat_completion_stream(request, ctx, **opts)
