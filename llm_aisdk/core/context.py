"""调用上下文：协作式取消信号与截止时间"""
import threading
import time
from typing import Callable, List, Optional

from llm_aisdk.core.exceptions import CanceledError, DeadlineExceededError, SDKError


class CallContext:
    """
    调用上下文：在一次调用的各层之间传递取消信号和截止时间

    - cancel() 置位取消信号，并立即执行已登记的关闭回调（如关闭在途的 HTTP 响应）
    - 子上下文继承父上下文的截止时间（取较早者），父上下文取消时子上下文随之取消
    - 截止时间不由定时器触发，由等待方轮询 err() 自行判定
    """

    POLL_INTERVAL = 0.05

    def __init__(
        self,
        timeout: Optional[float] = None,
        parent: Optional["CallContext"] = None,
        is_cancelled_func: Optional[Callable[[], bool]] = None,
    ):
        self._parent = parent
        self._is_cancelled_func = is_cancelled_func
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._closers: List[Callable[[], None]] = []

        deadline = time.monotonic() + timeout if timeout is not None else None
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self._deadline = deadline
        self._detach_from_parent = parent.add_closer(self.cancel) if parent is not None else None

    @property
    def deadline(self) -> Optional[float]:
        """截止时间（time.monotonic 时钟），None 表示不限"""
        return self._deadline

    def with_timeout(self, timeout: Optional[float]) -> "CallContext":
        """派生带超时的子上下文"""
        return CallContext(timeout=timeout, parent=self)

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def is_cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._is_cancelled_func is not None and self._is_cancelled_func():
            return True
        return self._parent is not None and self._parent.is_cancelled()

    def is_expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def err(self) -> Optional[SDKError]:
        """已取消返回 CanceledError，已超时返回 DeadlineExceededError，否则 None"""
        if self.is_cancelled():
            return CanceledError("context canceled")
        if self.is_expired():
            return DeadlineExceededError("context deadline exceeded")
        return None

    def check(self) -> None:
        err = self.err()
        if err is not None:
            raise err

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            closers, self._closers = self._closers, []
        for closer in closers:
            closer()

    def add_closer(self, closer: Callable[[], None]) -> Callable[[], None]:
        """
        登记取消时执行的关闭回调

        Returns:
            注销函数；已取消时回调会被立即执行
        """
        with self._lock:
            if not self._event.is_set():
                self._closers.append(closer)
                return lambda: self._remove_closer(closer)
        closer()
        return lambda: None

    def _remove_closer(self, closer: Callable[[], None]) -> None:
        with self._lock:
            if closer in self._closers:
                self._closers.remove(closer)

    def wait(self, timeout: float) -> bool:
        """最多等待 timeout 秒，期间被取消则提前返回 True"""
        return self._event.wait(timeout)

    def release(self) -> None:
        """调用结束后从父上下文解绑"""
        if self._detach_from_parent is not None:
            self._detach_from_parent()
            self._detach_from_parent = None
