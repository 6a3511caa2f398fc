"""结果信封：单次响应、流式分片与流统计"""
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Optional

# 常见的请求 ID 响应头，按顺序查找
REQUEST_ID_HEADERS = ("x-request-id", "request-id", "x-dashscope-request-id")


def request_id_from_headers(headers: Optional[Any]) -> str:
    if not headers:
        return ""
    for name in REQUEST_ID_HEADERS:
        value = headers.get(name)
        if value:
            return value
    return ""


@dataclass(frozen=True)
class Response:
    """单次调用的响应信封"""
    data: Any
    request_id: str = ""
    status_code: int = 200
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def usage(self) -> Optional[Dict[str, Any]]:
        if isinstance(self.data, dict):
            return self.data.get("usage")
        return getattr(self.data, "usage", None)


@dataclass
class StreamStats:
    """流式会话统计"""
    events: int = 0
    empty_messages: int = 0
    bytes_read: int = 0
    first_event_latency: Optional[float] = None
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class StreamChunk:
    """
    流式分片：finished=False 为普通元素；
    finished=True 为唯一的终止元素，data 为 None，携带整条流的用量与统计
    """
    data: Any
    finished: bool = False
    request_id: str = ""
    usage: Optional[Dict[str, Any]] = None
    stats: Optional[StreamStats] = None
