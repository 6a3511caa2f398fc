"""凭证池：单个提供商的 API Key 轮询与冷却"""
import threading
import time
from dataclasses import dataclass, replace
from typing import Iterable, Tuple

from llm_aisdk.core.exceptions import ConfigurationError
from llm_aisdk.util.logger import get_logger, mask_secret

_logger = get_logger("AISDK.LoadBalancer")


@dataclass(frozen=True)
class Credential:
    """API 凭证：密钥 + 冷却截止时间（time.monotonic 时钟）"""
    api_key: str
    cooldown_until: float = 0.0

    def is_healthy(self, now: float = None) -> bool:
        return (time.monotonic() if now is None else now) >= self.cooldown_until

    def __repr__(self) -> str:
        return f"Credential(api_key={mask_secret(self.api_key)!r}, cooldown_until={self.cooldown_until})"


class CredentialPool:
    """
    凭证池：按顺序轮询选择凭证

    游标每次选择只前进一次，由池自身的锁保护，不同提供商的池互不争用。
    处于冷却期的凭证会被跳过；全部冷却时仍返回游标位置的凭证，选择永不失败。
    """

    def __init__(self, api_keys: Iterable[str]):
        keys = [k.strip() for k in (api_keys or []) if k and k.strip()]
        if not keys:
            raise ConfigurationError("凭证池至少需要一个 api_key")
        self._credentials: Tuple[Credential, ...] = tuple(Credential(k) for k in keys)
        self._lock = threading.Lock()
        self._cursor = 0

    def __len__(self) -> int:
        return len(self._credentials)

    @property
    def credentials(self) -> Tuple[Credential, ...]:
        return self._credentials

    def next(self) -> Credential:
        """轮询选择下一个凭证"""
        now = time.monotonic()
        with self._lock:
            size = len(self._credentials)
            start = self._cursor % size
            self._cursor += 1
            for offset in range(size):
                cred = self._credentials[(start + offset) % size]
                if cred.is_healthy(now):
                    return cred
            return self._credentials[start]

    def cool_down(self, credential: Credential, seconds: float) -> None:
        """将凭证标记为冷却 seconds 秒（按密钥匹配，替换为新的不可变对象）"""
        if seconds <= 0:
            return
        until = time.monotonic() + seconds
        with self._lock:
            creds = list(self._credentials)
            for i, cred in enumerate(creds):
                if cred.api_key == credential.api_key:
                    creds[i] = replace(cred, cooldown_until=max(cred.cooldown_until, until))
            self._credentials = tuple(creds)
        _logger.warning(f"⏸️ 凭证 {mask_secret(credential.api_key)} 进入冷却 {seconds:.1f}s")

    def healthy_count(self) -> int:
        now = time.monotonic()
        return sum(1 for c in self._credentials if c.is_healthy(now))
