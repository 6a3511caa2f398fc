"""提供商适配器基类：模型表加载、凭证池初始化与请求描述构造"""
import json
import threading
from dataclasses import replace
from importlib import resources
from typing import Any, Dict, Mapping, Optional

from llm_aisdk.core.config import ProviderConfig
from llm_aisdk.core.context import CallContext
from llm_aisdk.core.exceptions import ConfigurationError
from llm_aisdk.core.models import Response
from llm_aisdk.core.provider import IProvider, ModelFeature, ModelType, SupportedModels
from llm_aisdk.impl.executor import RequestDescriptor, RequestExecutor
from llm_aisdk.impl.loadbalancer import CredentialPool
from llm_aisdk.impl.stream import StreamDecoder, StreamSession
from llm_aisdk.util.logger import get_logger

_logger = get_logger("AISDK.Registry")

MODELS_RESOURCE = "data/supported_models.json"

_models_cache: Dict[str, Any] = {}
_models_lock = threading.Lock()


def _load_model_tables() -> Dict[str, Any]:
    with _models_lock:
        if not _models_cache:
            text = resources.files("llm_aisdk.providers").joinpath(MODELS_RESOURCE).read_text(encoding="utf-8")
            _models_cache.update(json.loads(text))
        return _models_cache


def load_supported_models(provider_id: str) -> SupportedModels:
    """
    从内置模型表读取某个提供商支持的模型

    Returns:
        {ModelType: {模型名: ModelFeature}}，未收录的提供商返回空表
    """
    raw = _load_model_tables().get(provider_id, {})
    return {
        ModelType(model_type): {name: ModelFeature(flags) for name, flags in names.items()}
        for model_type, names in raw.items()
    }


class BaseProvider(IProvider):
    """
    适配器基类：持有模型表、提供商配置和凭证池

    子类只需声明 PROVIDER_ID / DEFAULT_BASE_URL，并按需继承能力接口。
    """

    PROVIDER_ID = ""
    DEFAULT_BASE_URL = ""

    def __init__(
        self,
        executor: RequestExecutor,
        stream_decoder: Optional[StreamDecoder] = None,
        supported_models: Optional[SupportedModels] = None,
    ):
        self._executor = executor
        self._stream_decoder = stream_decoder
        self._supported_models = supported_models if supported_models is not None else load_supported_models(self.PROVIDER_ID)
        self._config: Optional[ProviderConfig] = None
        self._pool: Optional[CredentialPool] = None

    @property
    def provider_id(self) -> str:
        return self.PROVIDER_ID

    @property
    def config(self) -> Optional[ProviderConfig]:
        return self._config

    @property
    def pool(self) -> Optional[CredentialPool]:
        return self._pool

    def get_supported_models(self) -> SupportedModels:
        return self._supported_models

    def initialize_provider_config(self, config: ProviderConfig) -> None:
        if not config.base_url and self.DEFAULT_BASE_URL:
            config = replace(config, base_url=self.DEFAULT_BASE_URL)
        config.validate(self.provider_id)
        self._pool = CredentialPool(config.api_keys)
        self._config = config
        _logger.info(f"🔧 [{self.provider_id}] 已初始化 | base_url={config.base_url} | 凭证数: {len(self._pool)}")

    def _descriptor(
        self,
        method: str,
        path: str,
        body: Any = None,
        opts: Optional[Mapping[str, Any]] = None,
        response_type=None,
    ) -> RequestDescriptor:
        """构造请求描述：提供商默认选项在前，单次调用选项在后"""
        if self._config is None or self._pool is None:
            raise ConfigurationError(f"提供商 '{self.provider_id}' 尚未初始化配置")
        return RequestDescriptor(
            provider=self.provider_id,
            method=method,
            base_url=self._config.base_url,
            path=path,
            pool=self._pool,
            options=(self._config.call_defaults(), dict(opts or {})),
            body=body,
            response_type=response_type,
        )

    def _execute(self, method: str, path: str, body: Any = None, ctx: Optional[CallContext] = None, **opts: Any) -> Response:
        return self._executor.execute(self._descriptor(method, path, body, opts), ctx)

    def _open_stream(self, path: str, body: Dict[str, Any], ctx: Optional[CallContext] = None, **opts: Any) -> StreamSession:
        if self._stream_decoder is None:
            raise ConfigurationError(f"提供商 '{self.provider_id}' 未配置流式解码器")
        return self._stream_decoder.open(self._descriptor("POST", path, dict(body or {}), opts), ctx)
