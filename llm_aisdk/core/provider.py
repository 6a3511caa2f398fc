"""提供商接口：基础契约与按方法族拆分的能力接口"""
from abc import ABC, abstractmethod
from enum import Enum, IntFlag
from typing import Any, Dict, Optional

from llm_aisdk.core.config import ProviderConfig
from llm_aisdk.core.context import CallContext
from llm_aisdk.core.models import Response


class ModelType(Enum):
    """模型类型"""
    CHAT = "chat"
    IMAGE = "image"
    AUDIO = "audio"
    MODERATION = "moderation"
    EMBED = "embed"


class ModelFeature(IntFlag):
    """模型特性位"""
    NONE = 0
    MULTIMODAL = 1


SupportedModels = Dict[ModelType, Dict[str, ModelFeature]]


class IProvider(ABC):
    """
    提供商基础接口：所有适配器都必须实现

    具体的调用能力通过下方的能力接口按需声明，未声明的能力由注册表统一返回“不支持”。
    """

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """提供商 ID（如 "openai"）"""
        pass

    @abstractmethod
    def get_supported_models(self) -> SupportedModels:
        """
        获取支持的模型

        Returns:
            {ModelType: {模型名: ModelFeature}}
        """
        pass

    @abstractmethod
    def initialize_provider_config(self, config: ProviderConfig) -> None:
        """
        初始化提供商配置（创建凭证池）

        Raises:
            ConfigurationError: 配置缺少 api_keys 等
        """
        pass


class IModelLister(ABC):
    """能力：列出模型"""

    @abstractmethod
    def list_models(self, ctx: Optional[CallContext] = None, **opts: Any) -> Response:
        pass


class IChatCompletion(ABC):
    """能力：单次聊天补全"""

    @abstractmethod
    def create_chat_completion(self, request: Dict[str, Any], ctx: Optional[CallContext] = None, **opts: Any) -> Response:
        pass


class IChatCompletionStream(ABC):
    """能力：流式聊天补全"""

    @abstractmethod
    def create_chat_completion_stream(self, request: Dict[str, Any], ctx: Optional[CallContext] = None, **opts: Any):
        """
        Returns:
            StreamSession：单次可迭代的流式会话
        """
        pass
