"""阿里云百炼（AliBL）适配器"""
from typing import Any, Dict, Optional

from llm_aisdk.core.context import CallContext
from llm_aisdk.core.models import Response
from llm_aisdk.core.provider import IChatCompletion, IChatCompletionStream
from llm_aisdk.impl.stream import StreamSession
from llm_aisdk.providers.base import BaseProvider

API_CHAT_COMPLETIONS = "/chat/completions"


class AliBLProvider(BaseProvider, IChatCompletion, IChatCompletionStream):
    """
    AliBL：走 DashScope 的 OpenAI 兼容模式

    不提供模型列表接口，list_models 由注册表统一返回 MethodNotSupported。
    """

    PROVIDER_ID = "alibl"
    DEFAULT_BASE_URL = "https://dashscope.aliyuncs.com/compatible-mode/v1"

    def create_chat_completion(self, request: Dict[str, Any], ctx: Optional[CallContext] = None, **opts: Any) -> Response:
        return self._execute("POST", API_CHAT_COMPLETIONS, request, ctx=ctx, **opts)

    def create_chat_completion_stream(self, request: Dict[str, Any], ctx: Optional[CallContext] = None, **opts: Any) -> StreamSession:
        return self._open_stream(API_CHAT_COMPLETIONS, request, ctx=ctx, **opts)
