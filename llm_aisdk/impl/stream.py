"""流式解码器：打开长连接，逐事件解码并检测停滞"""
import json
import queue
import threading
import time
from dataclasses import replace
from enum import Enum
from typing import Any, Callable, Iterator, Mapping, Optional, Tuple

import httpx

from llm_aisdk.core.config import CallOptions, DEFAULT_EMPTY_MESSAGES_LIMIT
from llm_aisdk.core.context import CallContext
from llm_aisdk.core.exceptions import (
    CanceledError,
    ErrorKind,
    ErrorRecord,
    ProviderAPIError,
    StreamConsumedError,
    StreamReturnIntervalTimeoutError,
    TooManyEmptyStreamMessagesError,
    classify,
)
from llm_aisdk.core.hooks import CompositeExecutorHooks
from llm_aisdk.core.models import StreamChunk, StreamStats, request_id_from_headers
from llm_aisdk.impl.executor import BaseExecutor, RequestDescriptor
from llm_aisdk.impl.metrics import SUCCESS
from llm_aisdk.util.logger import get_logger

_logger = get_logger("AISDK.Stream")

DATA_PREFIX = "data:"
DONE_MARKER = "[DONE]"
# 不携带负载、也不计入空消息的 SSE 字段
_IGNORED_PREFIXES = (":", "event:", "id:", "retry:")
# 传输层读超时相对静默间隔的余量，保证停滞优先由会话自身判定
_TRANSPORT_READ_MARGIN = 1.0

_DONE = object()


class StreamState(Enum):
    OPENING = "opening"
    STREAMING = "streaming"
    FINISHED = "finished"
    FAILED = "failed"


class StreamSession:
    """
    流式会话：单次可迭代，按到达顺序产出 StreamChunk

    - 普通元素 finished=False；干净结束时恰好产出一个 finished=True 的终止元素，
      携带整条流的用量与统计
    - 读线程把原始行放入有界队列，消费方按 POLL_INTERVAL 分片等待，
      期间检查取消信号、整体截止时间与事件静默间隔
    - 终止、失败、取消任一发生即关闭底层连接；结束回调只触发一次
    """

    POLL_INTERVAL = CallContext.POLL_INTERVAL
    QUEUE_SIZE = 1024

    def __init__(
        self,
        provider: str,
        response: httpx.Response,
        ctx: CallContext,
        options: CallOptions,
        response_type: Optional[Callable[[Any], Any]] = None,
        hooks: Optional[CompositeExecutorHooks] = None,
        on_done: Optional[Callable[[Any, int, str], None]] = None,
        started: Optional[float] = None,
    ):
        self.provider = provider
        self.request_id = request_id_from_headers(response.headers)
        self._response = response
        self._ctx = ctx
        self._interval = options.stream_return_interval_timeout
        self._empty_limit = options.empty_messages_limit if options.empty_messages_limit is not None else DEFAULT_EMPTY_MESSAGES_LIMIT
        self._response_type = response_type
        self._hooks = hooks or CompositeExecutorHooks([])
        self._on_done = on_done
        self._started = started if started is not None else time.monotonic()

        self._queue: "queue.Queue[Tuple[str, Any]]" = queue.Queue(maxsize=self.QUEUE_SIZE)
        self._reader = threading.Thread(target=self._pump, name=f"aisdk_stream_{provider}", daemon=True)
        self._lock = threading.Lock()
        self._consumed = False
        self._closed = threading.Event()
        self._done = False

        self.state = StreamState.STREAMING
        self.stats = StreamStats()
        self.usage: Optional[dict] = None
        self._consecutive_empty = 0
        self._remove_closer = ctx.add_closer(self._close_response)

    @property
    def closed(self) -> bool:
        """底层连接是否已关闭"""
        return self._response.is_closed

    # ---------- 读线程 ----------

    def _pump(self) -> None:
        try:
            for line in self._response.iter_lines():
                if not self._put(("line", line)):
                    return
            self._put(("eof", None))
        except Exception as e:
            # 主动关闭连接时读线程必然在此退出，错误交给消费方判定
            self._put(("error", e))

    def _put(self, item: Tuple[str, Any]) -> bool:
        while not self._closed.is_set():
            try:
                self._queue.put(item, timeout=self.POLL_INTERVAL)
                return True
            except queue.Full:
                continue
        return False

    # ---------- 消费方 ----------

    def __iter__(self) -> Iterator[StreamChunk]:
        with self._lock:
            if self._consumed:
                raise StreamConsumedError("stream session can only be consumed once")
            self._consumed = True
        return self._events()

    def __enter__(self) -> "StreamSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _events(self) -> Iterator[StreamChunk]:
        if self._closed.is_set():
            raise self._fail(CanceledError("stream session closed"))
        self._reader.start()
        try:
            while True:
                item = self._next_event()
                if item is _DONE:
                    yield self._finish()
                    return
                self._hooks.on_stream_event(self.provider, item)
                yield item
        except GeneratorExit:
            # 消费方中途放弃迭代
            self._abort()
            raise
        except Exception as e:
            record = self._fail(e)
            if record is e:
                raise
            raise record from e
        finally:
            self._close_response()

    def _next_event(self) -> Any:
        """拉取下一个逻辑事件；静默超过间隔即判定停滞"""
        wait_until = time.monotonic() + self._interval if self._interval else None
        while True:
            kind, payload = self._pull(wait_until)
            if kind == "eof":
                return _DONE
            if kind == "error":
                if isinstance(payload, httpx.ReadTimeout) and self._interval:
                    # 传输层读超时即事件静默，按停滞处理而非整体超时
                    raise ErrorRecord(ErrorKind.STREAM_RETURN_INTERVAL_TIMEOUT, payload, self.request_id)
                raise payload
            event = self._decode_line(payload)
            if event is not None:
                return event

    def _pull(self, wait_until: Optional[float]) -> Tuple[str, Any]:
        while True:
            err = self._ctx.err()
            if err is not None:
                raise err
            try:
                return self._queue.get(timeout=self.POLL_INTERVAL)
            except queue.Empty:
                pass
            if wait_until is not None and time.monotonic() >= wait_until:
                raise StreamReturnIntervalTimeoutError(f"no stream event within {self._interval:.2f}s")

    def _decode_line(self, raw: str) -> Any:
        """
        解码一行 SSE 数据

        Returns:
            None 表示无事件（分隔行、注释或空消息），_DONE 表示终止标记，否则为 StreamChunk
        """
        line = raw.strip()
        if not line or line.startswith(_IGNORED_PREFIXES):
            return None
        if not line.startswith(DATA_PREFIX):
            self._count_empty(line)
            return None
        data = line[len(DATA_PREFIX):].strip()
        if data == DONE_MARKER:
            return _DONE
        if not data:
            self._count_empty(line)
            return None
        try:
            obj = json.loads(data)
        except json.JSONDecodeError:
            self._count_empty(line)
            return None
        if isinstance(obj, dict) and obj.get("error"):
            err = obj["error"]
            message = err.get("message", str(err)) if isinstance(err, dict) else str(err)
            raise ProviderAPIError(self._response.status_code, message, self.request_id, err)

        self._consecutive_empty = 0
        if isinstance(obj, dict) and obj.get("usage"):
            self.usage = obj["usage"]
        if self.stats.first_event_latency is None:
            self.stats.first_event_latency = time.monotonic() - self._started
        self.stats.events += 1
        item = self._response_type(obj) if self._response_type is not None else obj
        return StreamChunk(data=item, finished=False, request_id=self.request_id)

    def _count_empty(self, line: str) -> None:
        self._consecutive_empty += 1
        self.stats.empty_messages += 1
        if self._consecutive_empty > self._empty_limit:
            raise TooManyEmptyStreamMessagesError(
                f"stream has sent too many empty messages ({self._consecutive_empty}), last={line[:80]!r}"
            )

    # ---------- 终止与清理 ----------

    def _finish(self) -> StreamChunk:
        self.state = StreamState.FINISHED
        self._collect_stats()
        self._close_response()
        chunk = StreamChunk(data=None, finished=True, request_id=self.request_id, usage=self.usage, stats=self.stats)
        self._hooks.on_stream_event(self.provider, chunk)
        self._complete(SUCCESS)
        return chunk

    def _fail(self, err: BaseException) -> ErrorRecord:
        record = classify(err)
        if record.request_id == "" and self.request_id:
            record = ErrorRecord(record.kind, err, self.request_id)
        self.state = StreamState.FAILED
        self._collect_stats()
        self._close_response()
        _logger.warning(f"⚠️ [{self.provider}] 流式会话失败 kind={record.kind.value} events={self.stats.events}: {err}")
        self._hooks.on_error(self.provider, record)
        self._complete(record.kind)
        return record

    def _abort(self) -> None:
        if self.state in (StreamState.FINISHED, StreamState.FAILED):
            return
        self.state = StreamState.FAILED
        self._collect_stats()
        self._close_response()
        self._complete(ErrorKind.CANCELED)

    def _collect_stats(self) -> None:
        self.stats.duration = time.monotonic() - self._started
        self.stats.bytes_read = self._response.num_bytes_downloaded

    def _close_response(self) -> None:
        self._closed.set()
        self._response.close()

    def _complete(self, outcome: Any) -> None:
        with self._lock:
            if self._done:
                return
            self._done = True
        self._remove_closer()
        self._ctx.release()
        if self._on_done is not None:
            self._on_done(outcome, self.stats.bytes_read, self.request_id)

    def close(self) -> None:
        """关闭会话：未结束时按取消处理，可重复调用"""
        self._ctx.cancel()
        self._abort()

    def for_each(self, callback: Callable[[StreamChunk, bool], Any]) -> None:
        """
        回调式消费：callback(chunk, finished)

        回调抛出的异常会中止会话并原样抛出；取消、停滞等失败以 ErrorRecord 抛出。
        """
        events = iter(self)
        try:
            for chunk in events:
                try:
                    callback(chunk, chunk.finished)
                except Exception:
                    self.close()
                    raise
        finally:
            events.close()


class StreamDecoder(BaseExecutor):
    """流式请求执行器：建立连接后返回 StreamSession"""

    def open(self, descriptor: RequestDescriptor, ctx: Optional[CallContext] = None) -> StreamSession:
        """
        打开流式会话

        Raises:
            ErrorRecord: 建连阶段的失败与单次请求同样分类
        """
        opts = self.merge_options(descriptor)
        if isinstance(opts.body, Mapping):
            # 合并之后再置位，单次调用的 body 选项整体覆盖时也不会丢失
            opts = replace(opts, body={**opts.body, "stream": True})
        stream_ctx = CallContext(timeout=opts.timeout, parent=ctx)
        started = time.monotonic()
        credential = descriptor.pool.next()
        self._start(descriptor, credential)

        read_timeout = None
        if opts.stream_return_interval_timeout:
            read_timeout = opts.stream_return_interval_timeout + _TRANSPORT_READ_MARGIN
        try:
            http_response = self._submit(
                stream_ctx, self._open, descriptor, credential, opts,
                self._transport_timeout(stream_ctx, read=read_timeout),
            )
        except Exception as e:
            record = self._classify(descriptor.provider, e)
            stream_ctx.release()
            self._finish(descriptor.provider, record.kind, started, 0, record.request_id)
            raise record from e

        def on_done(outcome: Any, nbytes: int, request_id: str) -> None:
            self._finish(descriptor.provider, outcome, started, nbytes, request_id)

        session = StreamSession(
            descriptor.provider,
            http_response,
            stream_ctx,
            opts,
            response_type=descriptor.response_type,
            hooks=self.hooks,
            on_done=on_done,
            started=started,
        )
        _logger.info(f"🌊 [{descriptor.provider}] 流式会话已建立 request_id={session.request_id or '-'}")
        return session
