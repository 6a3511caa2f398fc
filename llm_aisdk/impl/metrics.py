"""指标收集：按提供商统计请求数、成功/失败、流量与耗时"""
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Union

from llm_aisdk.core.exceptions import ErrorKind

SUCCESS = "success"


@dataclass(frozen=True)
class ProviderMetrics:
    """单个提供商的指标快照"""
    requests: int = 0
    successes: int = 0
    failures: Mapping[str, int] = field(default_factory=dict)
    bytes_transferred: int = 0
    total_latency: float = 0.0

    @property
    def failure_count(self) -> int:
        return sum(self.failures.values())

    @property
    def average_latency(self) -> float:
        return self.total_latency / self.requests if self.requests else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requests": self.requests,
            "successes": self.successes,
            "failures": dict(self.failures),
            "bytes_transferred": self.bytes_transferred,
            "average_latency": round(self.average_latency, 6),
        }


class MetricsSnapshot(Mapping):
    """不可变的指标快照：提供商 ID -> ProviderMetrics"""
    def __init__(self, data: Dict[str, ProviderMetrics]):
        self._data = MappingProxyType(dict(data))

    def __getitem__(self, key: str) -> ProviderMetrics:
        return self._data[key]

    def __iter__(self):
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def to_dict(self) -> Dict[str, Any]:
        return {k: v.to_dict() for k, v in self._data.items()}


class _Counters:
    __slots__ = ("lock", "requests", "successes", "failures", "bytes_transferred", "total_latency")

    def __init__(self):
        self.lock = threading.Lock()
        self.requests = 0
        self.successes = 0
        self.failures: Dict[str, int] = {}
        self.bytes_transferred = 0
        self.total_latency = 0.0


class MetricsCollector:
    """
    指标收集器：执行器写入，调用方读取快照

    每个提供商一把锁，record 只在该提供商的锁内做几次加法；
    record 从不抛出异常。
    """

    def __init__(self):
        self._counters: Dict[str, _Counters] = {}
        self._registry_lock = threading.Lock()

    def _get(self, provider: str) -> _Counters:
        counters = self._counters.get(provider)
        if counters is None:
            with self._registry_lock:
                counters = self._counters.setdefault(provider, _Counters())
        return counters

    def record(self, provider: str, outcome: Union[str, ErrorKind], elapsed: float, bytes_transferred: int = 0) -> None:
        """
        记录一次调用结果

        Args:
            provider: 提供商 ID
            outcome: "success" 或 ErrorKind
            elapsed: 耗时（秒）
            bytes_transferred: 传输字节数
        """
        key = outcome.value if isinstance(outcome, ErrorKind) else str(outcome)
        counters = self._get(provider)
        with counters.lock:
            counters.requests += 1
            if key == SUCCESS:
                counters.successes += 1
            else:
                counters.failures[key] = counters.failures.get(key, 0) + 1
            counters.bytes_transferred += max(0, int(bytes_transferred or 0))
            counters.total_latency += max(0.0, float(elapsed or 0.0))

    def snapshot(self) -> MetricsSnapshot:
        """返回当前所有提供商的指标拷贝"""
        with self._registry_lock:
            items = list(self._counters.items())
        data = {}
        for provider, c in items:
            with c.lock:
                data[provider] = ProviderMetrics(
                    requests=c.requests,
                    successes=c.successes,
                    failures=MappingProxyType(dict(c.failures)),
                    bytes_transferred=c.bytes_transferred,
                    total_latency=c.total_latency,
                )
        return MetricsSnapshot(data)

    def reset(self) -> None:
        with self._registry_lock:
            self._counters = {}
