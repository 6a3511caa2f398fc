"""请求执行器：选凭证、发请求、分类错误、解码响应、记录指标"""
import json
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import httpx
import openai

from llm_aisdk.core.config import CallOptions
from llm_aisdk.core.context import CallContext
from llm_aisdk.core.exceptions import CanceledError, ErrorKind, ErrorRecord, ProviderAPIError, classify
from llm_aisdk.core.hooks import CompositeExecutorHooks, IExecutorHooks
from llm_aisdk.core.models import Response, request_id_from_headers
from llm_aisdk.impl.loadbalancer import Credential, CredentialPool
from llm_aisdk.impl.metrics import SUCCESS, MetricsCollector
from llm_aisdk.util.logger import get_logger, mask_secret

_logger = get_logger("AISDK.Executor")


@dataclass(frozen=True)
class RequestDescriptor:
    """
    请求描述：构造后不可变，只被执行一次

    Attributes:
        provider: 提供商 ID
        method: HTTP 方法
        base_url: 提供商基础 URL
        path: API 路径（如 "/chat/completions"）
        pool: 该提供商的凭证池
        options: 按顺序合并的调用选项（提供商默认值在前，单次调用覆盖在后）
        body: 请求体，可被 options 中的 body 覆盖
        response_type: 对解码后的 JSON 再做一次转换（响应接收器）
    """
    provider: str
    method: str
    base_url: str
    path: str
    pool: CredentialPool
    options: Tuple[Mapping[str, Any], ...] = ()
    body: Any = None
    response_type: Optional[Callable[[Any], Any]] = None

    @property
    def url(self) -> str:
        return self.base_url.rstrip("/") + self.path


class InFlight:
    """
    工作线程中的在途请求句柄

    等待方放弃后调用 abort()：已拿到的响应立即关闭（打断正在进行的读取），
    之后才到达的响应在 attach() 时直接关闭。
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._response: Optional[httpx.Response] = None
        self._aborted = False

    @property
    def aborted(self) -> bool:
        return self._aborted

    def attach(self, response: httpx.Response) -> bool:
        with self._lock:
            if not self._aborted:
                self._response = response
                return True
        response.close()
        return False

    def abort(self) -> None:
        with self._lock:
            self._aborted = True
            response, self._response = self._response, None
        if response is not None:
            response.close()


def _retry_after(headers: Mapping[str, str]) -> float:
    value = headers.get("retry-after") if headers else None
    try:
        return float(value) if value else 0.0
    except ValueError:
        return 0.0


class BaseExecutor:
    """
    执行器基类：单次执行器与流式解码器共享的请求构造与发送逻辑

    每个 (base_url, api_key) 复用一个 openai 客户端，客户端禁用自动重试，
    重试策略由调用方根据 ErrorRecord.retryable 自行决定。
    """

    DEFAULT_MAX_WORKERS = 32
    POLL_INTERVAL = CallContext.POLL_INTERVAL

    def __init__(
        self,
        metrics: Optional[MetricsCollector] = None,
        hooks: Optional[IExecutorHooks] = None,
        http_client: Optional[httpx.Client] = None,
        defaults: Optional[CallOptions] = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.metrics = metrics if metrics is not None else MetricsCollector()
        self.hooks = hooks if isinstance(hooks, CompositeExecutorHooks) else CompositeExecutorHooks([hooks])
        self.defaults = defaults or CallOptions.defaults()
        self._http_client = http_client
        self._clients: Dict[str, openai.OpenAI] = {}
        self._client_lock = threading.Lock()
        self._workers = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="aisdk_")

    def _get_client(self, base_url: str, credential: Credential) -> openai.OpenAI:
        cache_key = f"{base_url}_{credential.api_key}"
        with self._client_lock:
            if cache_key not in self._clients:
                self._clients[cache_key] = openai.OpenAI(
                    api_key=credential.api_key,
                    base_url=base_url,
                    max_retries=0,
                    http_client=self._http_client,
                )
            return self._clients[cache_key]

    def merge_options(self, descriptor: RequestDescriptor) -> CallOptions:
        return CallOptions.merge(self.defaults, {"body": descriptor.body}, *descriptor.options)

    def _send(
        self,
        descriptor: RequestDescriptor,
        credential: Credential,
        opts: CallOptions,
        timeout: httpx.Timeout,
        stream: bool = False,
    ) -> httpx.Response:
        """在工作线程中发出请求；非 2xx 转换为 ProviderAPIError"""
        client = self._get_client(descriptor.base_url, credential)
        method = descriptor.method.upper()
        request_options: Dict[str, Any] = {"timeout": timeout}
        if opts.headers:
            request_options["headers"] = dict(opts.headers)
        try:
            if method == "GET":
                return client.get(descriptor.path, cast_to=httpx.Response, options=request_options, stream=stream)
            if method == "POST":
                return client.post(descriptor.path, cast_to=httpx.Response, body=opts.body, options=request_options, stream=stream)
            if method == "PUT":
                return client.put(descriptor.path, cast_to=httpx.Response, body=opts.body, options=request_options)
            if method == "PATCH":
                return client.patch(descriptor.path, cast_to=httpx.Response, body=opts.body, options=request_options)
            if method == "DELETE":
                return client.delete(descriptor.path, cast_to=httpx.Response, options=request_options)
            raise ValueError(f"不支持的 HTTP 方法: {descriptor.method}")
        except openai.APIStatusError as e:
            raise self._provider_error(descriptor, credential, e) from e

    def _provider_error(self, descriptor: RequestDescriptor, credential: Credential, err: openai.APIStatusError) -> ProviderAPIError:
        headers = err.response.headers if err.response is not None else {}
        body = err.body
        if isinstance(body, dict) and body.get("message"):
            message = str(body["message"])
        else:
            message = err.message
        if err.status_code == 429:
            descriptor.pool.cool_down(credential, _retry_after(headers))
        return ProviderAPIError(err.status_code, message, request_id_from_headers(headers), body)

    def _open(
        self,
        inflight: InFlight,
        descriptor: RequestDescriptor,
        credential: Credential,
        opts: CallOptions,
        timeout: httpx.Timeout,
    ) -> httpx.Response:
        """只读到响应头，响应体留给调用方按需读取"""
        response = self._send(descriptor, credential, opts, timeout, stream=True)
        if not inflight.attach(response):
            raise CanceledError("request abandoned before response headers")
        return response

    def _fetch(
        self,
        inflight: InFlight,
        descriptor: RequestDescriptor,
        credential: Credential,
        opts: CallOptions,
        timeout: httpx.Timeout,
    ) -> Tuple[httpx.Response, bytes]:
        """读取完整响应体；被放弃后在下一个数据块处停止"""
        response = self._open(inflight, descriptor, credential, opts, timeout)
        chunks = []
        try:
            for chunk in response.iter_bytes():
                if inflight.aborted:
                    raise CanceledError("request abandoned while reading body")
                chunks.append(chunk)
        finally:
            response.close()
        return response, b"".join(chunks)

    def _submit(self, ctx: CallContext, fn: Callable[..., Any], *args: Any) -> Any:
        """
        提交到工作线程并等待结果

        等待按 POLL_INTERVAL 分片进行，期间检查取消信号与截止时间；
        提前返回时中止在途请求，关闭已建立的响应连接。
        """
        ctx.check()
        inflight = InFlight()
        future: Future = self._workers.submit(fn, inflight, *args)
        remove_closer = ctx.add_closer(inflight.abort)
        try:
            while True:
                err = ctx.err()
                if err is not None:
                    inflight.abort()
                    raise err
                done, _ = wait([future], timeout=self.POLL_INTERVAL)
                if done:
                    return future.result()
        finally:
            remove_closer()

    def _transport_timeout(self, ctx: CallContext, read: Optional[float] = None) -> httpx.Timeout:
        remaining = ctx.remaining()
        if read is None:
            return httpx.Timeout(remaining)
        return httpx.Timeout(remaining, read=read)

    def _start(self, descriptor: RequestDescriptor, credential: Credential) -> None:
        _logger.debug(f"➡️ [{descriptor.provider}] {descriptor.method} {descriptor.url} | key={mask_secret(credential.api_key)}")
        self.hooks.on_request_start(descriptor.provider, descriptor.method.upper(), descriptor.url)

    def _finish(self, provider: str, outcome: Any, started: float, nbytes: int, request_id: str) -> None:
        elapsed = time.monotonic() - started
        self.metrics.record(provider, outcome, elapsed, nbytes)
        label = outcome.value if isinstance(outcome, ErrorKind) else outcome
        self.hooks.on_request_end(provider, label, elapsed, request_id)

    def _classify(self, provider: str, err: BaseException, rid: str = "") -> ErrorRecord:
        record = classify(err)
        if rid and not record.request_id:
            record = ErrorRecord(record.kind, err, rid)
        _logger.warning(f"⚠️ [{provider}] 调用失败 kind={record.kind.value} request_id={record.request_id or '-'}: {err}")
        self.hooks.on_error(provider, record)
        return record

    def close(self) -> None:
        self._workers.shutdown(wait=False)
        with self._client_lock:
            for client in self._clients.values():
                client.close()
            self._clients.clear()


class RequestExecutor(BaseExecutor):
    """单次请求执行器"""

    def execute(self, descriptor: RequestDescriptor, ctx: Optional[CallContext] = None) -> Response:
        """
        执行一次请求

        Args:
            descriptor: 请求描述
            ctx: 调用上下文（取消/截止时间），默认不可取消

        Returns:
            Response 信封

        Raises:
            ErrorRecord: 所有失败都已分类
        """
        opts = self.merge_options(descriptor)
        call_ctx = CallContext(timeout=opts.timeout, parent=ctx)
        started = time.monotonic()
        outcome: Any = SUCCESS
        nbytes = 0
        rid = ""
        credential = descriptor.pool.next()
        self._start(descriptor, credential)
        try:
            http_response, content = self._submit(
                call_ctx, self._fetch, descriptor, credential, opts, self._transport_timeout(call_ctx)
            )
            rid = request_id_from_headers(http_response.headers)
            nbytes = len(content)
            data = json.loads(content) if content else None
            if descriptor.response_type is not None:
                data = descriptor.response_type(data)
            return Response(
                data=data,
                request_id=rid,
                status_code=http_response.status_code,
                headers=dict(http_response.headers),
            )
        except Exception as e:
            record = self._classify(descriptor.provider, e, rid)
            outcome = record.kind
            rid = record.request_id
            raise record from e
        finally:
            call_ctx.release()
            self._finish(descriptor.provider, outcome, started, nbytes, rid)
