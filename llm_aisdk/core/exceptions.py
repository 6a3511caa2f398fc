"""AISDK 异常体系：哨兵异常、错误分类与错误记录"""
from enum import Enum
from typing import Any, Iterator, Optional

import httpx
import openai


class ErrorKind(Enum):
    """错误类别"""
    CONFIG_MANAGER_CREATION = "config_manager_creation"
    INSTANCE_CREATION = "instance_creation"
    PROVIDER_NOT_SUPPORTED = "provider_not_supported"
    MODEL_TYPE_NOT_SUPPORTED = "model_type_not_supported"
    MODEL_NOT_SUPPORTED = "model_not_supported"
    METHOD_NOT_SUPPORTED = "method_not_supported"
    COMPLETION_STREAM_NOT_SUPPORTED = "completion_stream_not_supported"
    TOO_MANY_EMPTY_STREAM_MESSAGES = "too_many_empty_stream_messages"
    STREAM_RETURN_INTERVAL_TIMEOUT = "stream_return_interval_timeout"
    CANCELED = "canceled"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    NETWORK = "network"
    PROVIDER = "provider"
    UNKNOWN = "unknown"


class SDKError(Exception):
    """AISDK 异常基类"""
    pass


class ConfigurationError(SDKError):
    """配置缺失或非法（如提供商未配置 api_keys）"""
    pass


class InstanceCreationError(SDKError):
    """提供商实例创建失败"""
    pass


class ProviderNotSupportedError(SDKError):
    """提供商未注册"""
    pass


class ModelTypeNotSupportedError(SDKError):
    """提供商不支持该模型类型"""
    pass


class ModelNotSupportedError(SDKError):
    """提供商不支持该模型"""
    pass


class MethodNotSupportedError(SDKError):
    """提供商未实现该方法"""
    pass


class CompletionStreamNotSupportedError(SDKError):
    """流式请求走了非流式方法，或提供商不支持流式"""
    pass


class TooManyEmptyStreamMessagesError(SDKError):
    """连续空消息/乱码消息超过容忍上限"""
    pass


class StreamReturnIntervalTimeoutError(SDKError):
    """两次流事件之间的静默时间超过上限"""
    pass


class CanceledError(SDKError):
    """调用方取消了操作"""
    pass


class DeadlineExceededError(SDKError):
    """操作超过整体截止时间"""
    pass


class StreamConsumedError(SDKError):
    """流会话只能被消费一次"""
    pass


class ProviderAPIError(SDKError):
    """提供商返回的非 2xx 响应"""

    def __init__(self, status_code: int, message: str, request_id: str = "", body: Any = None):
        self.status_code = status_code
        self.message = message
        self.request_id = request_id or ""
        self.body = body
        super().__init__(f"provider error {status_code}: {message}")

    @property
    def error_type(self) -> Optional[str]:
        return self.body.get("type") if isinstance(self.body, dict) else None

    @property
    def code(self) -> Optional[str]:
        return self.body.get("code") if isinstance(self.body, dict) else None


# 哨兵异常与错误类别的对应关系（按顺序匹配）
_SENTINEL_KINDS = (
    (ConfigurationError, ErrorKind.CONFIG_MANAGER_CREATION),
    (InstanceCreationError, ErrorKind.INSTANCE_CREATION),
    (ProviderNotSupportedError, ErrorKind.PROVIDER_NOT_SUPPORTED),
    (ModelTypeNotSupportedError, ErrorKind.MODEL_TYPE_NOT_SUPPORTED),
    (ModelNotSupportedError, ErrorKind.MODEL_NOT_SUPPORTED),
    (MethodNotSupportedError, ErrorKind.METHOD_NOT_SUPPORTED),
    (CompletionStreamNotSupportedError, ErrorKind.COMPLETION_STREAM_NOT_SUPPORTED),
    (TooManyEmptyStreamMessagesError, ErrorKind.TOO_MANY_EMPTY_STREAM_MESSAGES),
    (StreamReturnIntervalTimeoutError, ErrorKind.STREAM_RETURN_INTERVAL_TIMEOUT),
)

_DEADLINE_TYPES = (DeadlineExceededError, openai.APITimeoutError, httpx.TimeoutException, TimeoutError)
_NETWORK_TYPES = (openai.APIConnectionError, httpx.TransportError, OSError)
_RETRYABLE_STATUS = {408, 409, 429, 500, 502, 503, 504}


class ErrorRecord(SDKError):
    """
    已分类的错误记录：调用方看到的唯一错误形态

    Attributes:
        kind: 错误类别
        cause: 原始异常（可逐层展开）
        request_id: 提供商返回的请求 ID，可能为空
    """

    def __init__(self, kind: ErrorKind, cause: Optional[BaseException] = None, request_id: str = "", message: Optional[str] = None):
        self._kind = kind
        self._cause = cause
        self._request_id = request_id or ""
        if message is None:
            message = f"[{kind.value}] {cause}" if cause is not None else kind.value
        super().__init__(message)

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def cause(self) -> Optional[BaseException]:
        return self._cause

    @property
    def request_id(self) -> str:
        return self._request_id

    @property
    def retryable(self) -> bool:
        """是否适合由上层重试（本库自身从不重试）"""
        if self._kind in (ErrorKind.NETWORK, ErrorKind.DEADLINE_EXCEEDED):
            return True
        if self._kind is ErrorKind.PROVIDER:
            status = getattr(self._cause, "status_code", None)
            return status in _RETRYABLE_STATUS
        return False

    def root_cause(self) -> BaseException:
        """沿 cause 链展开，返回最底层的原始异常"""
        last: BaseException = self
        for err in _iter_chain(self._cause):
            last = err
        return last

    def __repr__(self) -> str:
        return f"ErrorRecord(kind={self._kind.value!r}, cause={self._cause!r}, request_id={self._request_id!r})"


def _next_in_chain(err: BaseException) -> Optional[BaseException]:
    if isinstance(err, ErrorRecord) and err.cause is not None:
        return err.cause
    if err.__cause__ is not None:
        return err.__cause__
    if not err.__suppress_context__:
        return err.__context__
    return None


def _iter_chain(err: Optional[BaseException]) -> Iterator[BaseException]:
    """按 cause / __cause__ / __context__ 链依次产出异常（防环）"""
    seen = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        yield err
        err = _next_in_chain(err)


def _find(err: BaseException, types) -> Optional[BaseException]:
    for e in _iter_chain(err):
        if isinstance(e, types):
            return e
    return None


def _rules():
    yield CanceledError, ErrorKind.CANCELED
    yield _DEADLINE_TYPES, ErrorKind.DEADLINE_EXCEEDED
    yield _NETWORK_TYPES, ErrorKind.NETWORK
    yield (ProviderAPIError, openai.APIStatusError), ErrorKind.PROVIDER
    yield from _SENTINEL_KINDS


def _extract_request_id(err: BaseException) -> str:
    for e in _iter_chain(err):
        rid = getattr(e, "request_id", None)
        if rid:
            return rid
    return ""


def classify(raw: BaseException) -> ErrorRecord:
    """
    将任意异常映射为 ErrorRecord（按规则顺序，首个命中即返回）

    1. 取消 -> CANCELED
    2. 截止时间/超时 -> DEADLINE_EXCEEDED
    3. 传输层/套接字错误 -> NETWORK
    4. 提供商非 2xx 响应 -> PROVIDER
    5. 领域哨兵异常 -> 对应类别
    6. 其他 -> UNKNOWN

    取消在整条链上优先；其余规则先匹配异常本身，全部落空后才沿 cause 链查找，
    因此 `raise StreamReturnIntervalTimeoutError(...) from ReadTimeout` 仍归为停滞。
    """
    if isinstance(raw, ErrorRecord):
        return raw

    rid = _extract_request_id(raw)
    if _find(raw, CanceledError) is not None:
        return ErrorRecord(ErrorKind.CANCELED, raw, rid)
    for types, kind in _rules():
        if isinstance(raw, types):
            return ErrorRecord(kind, raw, rid)
    for types, kind in _rules():
        if _find(raw, types) is not None:
            return ErrorRecord(kind, raw, rid)
    return ErrorRecord(ErrorKind.UNKNOWN, raw, rid)


def unwrap(err: BaseException) -> BaseException:
    """去掉 ErrorRecord 外壳，返回直接原因"""
    if isinstance(err, ErrorRecord) and err.cause is not None:
        return err.cause
    return err


def cause(err: BaseException) -> BaseException:
    """返回最底层的原始异常"""
    last = err
    for e in _iter_chain(err):
        last = e
    return last


def request_id(err: BaseException) -> str:
    """提取错误链上的请求 ID"""
    return _extract_request_id(err)


def is_kind(err: BaseException, kind: ErrorKind) -> bool:
    return classify(err).kind is kind
