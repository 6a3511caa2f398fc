"""提供商适配器与注册表"""
from .base import BaseProvider, load_supported_models
from .registry import ProviderRegistry
from .openai_provider import OpenAIProvider
from .deepseek_provider import DeepSeekProvider
from .alibl_provider import AliBLProvider

# 内置适配器，由 SDKClient 显式注册
BUILTIN_PROVIDERS = (OpenAIProvider, DeepSeekProvider, AliBLProvider)

__all__ = [
    "BaseProvider",
    "load_supported_models",
    "ProviderRegistry",
    "OpenAIProvider",
    "DeepSeekProvider",
    "AliBLProvider",
    "BUILTIN_PROVIDERS",
]
