"""DeepSeek 适配器"""
from llm_aisdk.providers.openai_provider import OpenAIProvider


class DeepSeekProvider(OpenAIProvider):
    """DeepSeek：协议与 OpenAI 兼容，复用其全部能力"""

    PROVIDER_ID = "deepseek"
    DEFAULT_BASE_URL = "https://api.deepseek.com"
