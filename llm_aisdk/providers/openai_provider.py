"""OpenAI 适配器"""
from typing import Any, Dict, Optional

from llm_aisdk.core.context import CallContext
from llm_aisdk.core.models import Response
from llm_aisdk.core.provider import IChatCompletion, IChatCompletionStream, IModelLister
from llm_aisdk.impl.stream import StreamSession
from llm_aisdk.providers.base import BaseProvider

API_MODELS = "/models"
API_CHAT_COMPLETIONS = "/chat/completions"


class OpenAIProvider(BaseProvider, IModelLister, IChatCompletion, IChatCompletionStream):
    """OpenAI：列出模型、聊天补全（含流式）"""

    PROVIDER_ID = "openai"
    DEFAULT_BASE_URL = "https://api.openai.com/v1"

    def list_models(self, ctx: Optional[CallContext] = None, **opts: Any) -> Response:
        return self._execute("GET", API_MODELS, ctx=ctx, **opts)

    def create_chat_completion(self, request: Dict[str, Any], ctx: Optional[CallContext] = None, **opts: Any) -> Response:
        return self._execute("POST", API_CHAT_COMPLETIONS, request, ctx=ctx, **opts)

    def create_chat_completion_stream(self, request: Dict[str, Any], ctx: Optional[CallContext] = None, **opts: Any) -> StreamSession:
        return self._open_stream(API_CHAT_COMPLETIONS, request, ctx=ctx, **opts)
