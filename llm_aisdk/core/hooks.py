"""执行器钩子接口：请求生命周期的可扩展回调（中间件）"""
import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Protocol

from llm_aisdk.core.exceptions import ErrorRecord
from llm_aisdk.core.models import StreamChunk
from llm_aisdk.util.logger import get_logger

_logger = get_logger("AISDK.Hooks")


class IExecutorHooks(Protocol):
    """
    执行器钩子接口：定义请求执行过程中的所有回调点

    钩子只做观察，不能改变调用结果；钩子内部异常会被记录而不会向上抛出。
    """

    def on_request_start(self, provider: str, method: str, url: str) -> None:
        """请求发出前调用"""
        ...

    def on_request_end(self, provider: str, outcome: str, elapsed: float, request_id: str = "") -> None:
        """请求（或整条流）结束时调用，outcome 为 "success" 或错误类别"""
        ...

    def on_stream_event(self, provider: str, chunk: StreamChunk) -> None:
        """每交付一个流式分片时调用"""
        ...

    def on_error(self, provider: str, record: ErrorRecord) -> None:
        """错误分类完成后调用"""
        ...


class CompositeExecutorHooks(IExecutorHooks):
    """组合钩子分发器"""
    def __init__(self, hooks: List[Optional[IExecutorHooks]]):
        self.hooks = [h for h in hooks if h is not None]

    def _dispatch(self, name: str, *args: Any) -> None:
        for h in self.hooks:
            fn = getattr(h, name, None)
            if fn is None:
                continue
            try:
                fn(*args)
            except Exception as e:
                _logger.warning(f"⚠️ 钩子 {h.__class__.__name__}.{name} 执行异常: {e}")

    def on_request_start(self, provider, method, url):
        self._dispatch("on_request_start", provider, method, url)

    def on_request_end(self, provider, outcome, elapsed, request_id=""):
        self._dispatch("on_request_end", provider, outcome, elapsed, request_id)

    def on_stream_event(self, provider, chunk):
        self._dispatch("on_stream_event", provider, chunk)

    def on_error(self, provider, record):
        self._dispatch("on_error", provider, record)


class LoggingHooks(IExecutorHooks):
    """默认中间件：记录请求生命周期日志"""
    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or get_logger("AISDK.Client")

    def on_request_start(self, provider, method, url):
        self._logger.debug(f"➡️ [{provider}] {method} {url}")

    def on_request_end(self, provider, outcome, elapsed, request_id=""):
        if outcome == "success":
            self._logger.info(f"✅ [{provider}] 成功 | 耗时: {elapsed:.2f}s | request_id={request_id or '-'}")
        else:
            self._logger.warning(f"⚠️ [{provider}] 失败({outcome}) | 耗时: {elapsed:.2f}s | request_id={request_id or '-'}")

    def on_stream_event(self, provider, chunk):
        if chunk.finished and chunk.stats is not None:
            self._logger.info(f"🏁 [{provider}] 流结束 | 事件数: {chunk.stats.events} | 空消息: {chunk.stats.empty_messages}")

    def on_error(self, provider, record):
        self._logger.error(f"🚨 [{provider}] {record.kind.value}: {record.root_cause()!r}")


def _empty_usage() -> Dict[str, int]:
    return {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}


class UsageHooks(IExecutorHooks):
    """
    用量累加器：按提供商累加 token 用量

    流式用量取自终止分片；单次调用的用量由调用方通过 add 写入。
    """
    def __init__(self):
        self._lock = threading.Lock()
        self._usages: Dict[str, Dict[str, int]] = {}

    def add(self, provider: str, usage: Optional[Mapping[str, Any]]) -> None:
        if not usage:
            return
        p = usage.get("prompt_tokens", 0) or 0
        c = usage.get("completion_tokens", 0) or 0
        t = usage.get("total_tokens", 0) or (p + c)
        with self._lock:
            acc = self._usages.setdefault(provider, _empty_usage())
            acc["prompt_tokens"] += p
            acc["completion_tokens"] += c
            acc["total_tokens"] += t

    def on_stream_event(self, provider, chunk):
        if chunk.finished:
            self.add(provider, chunk.usage)

    def pull_usage(self) -> Dict[str, Dict[str, int]]:
        """
        拉取当前累加的用量快照并重置

        Returns:
            {提供商 ID: 用量}
        """
        with self._lock:
            snapshot = self._usages
            self._usages = {}
            return snapshot
