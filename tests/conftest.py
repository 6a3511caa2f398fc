"""Pytest configuration for llm-aisdk tests."""

import json
import sys
import time
from pathlib import Path

import httpx
import pytest

# Ensure llm_aisdk is importable without installation
root_path = str(Path(__file__).parent.parent)
if root_path not in sys.path:
    sys.path.insert(0, root_path)

from llm_aisdk.impl.executor import RequestExecutor  # noqa: E402
from llm_aisdk.impl.metrics import MetricsCollector  # noqa: E402
from llm_aisdk.impl.stream import StreamDecoder  # noqa: E402

BASE_URL = "https://mock.aisdk.test/v1"


def chat_body(content="hello", usage=None):
    body = {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "model": "deepseek-chat",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}, "finish_reason": "stop"}],
    }
    if usage is not None:
        body["usage"] = usage
    return body


def sse_event(payload):
    """Encode one SSE data event."""
    return f"data: {json.dumps(payload)}\n\n".encode("utf-8")


def sse_body(events, done=True, pause=0.0, pause_after=None):
    """
    Build a lazy SSE body.

    pause / pause_after: sleep `pause` seconds after the `pause_after`-th event,
    used to simulate a stalled upstream.
    """
    def gen():
        for i, payload in enumerate(events):
            yield sse_event(payload)
            if pause and pause_after is not None and i + 1 == pause_after:
                time.sleep(pause)
        if done:
            yield b"data: [DONE]\n\n"
    return gen()


def delta(text, index=0):
    return {"id": "chatcmpl-1", "object": "chat.completion.chunk", "choices": [{"index": index, "delta": {"content": text}}]}


@pytest.fixture
def mock_http():
    """Factory: handler -> httpx.Client backed by MockTransport."""
    clients = []

    def factory(handler):
        client = httpx.Client(transport=httpx.MockTransport(handler))
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.close()


@pytest.fixture
def metrics():
    return MetricsCollector()


@pytest.fixture
def make_executor(metrics):
    executors = []

    def factory(handler, hooks=None):
        executor = RequestExecutor(
            metrics=metrics,
            hooks=hooks,
            http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        )
        executors.append(executor)
        return executor

    yield factory
    for executor in executors:
        executor.close()


@pytest.fixture
def make_decoder(metrics):
    decoders = []

    def factory(handler, hooks=None):
        decoder = StreamDecoder(
            metrics=metrics,
            hooks=hooks,
            http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        )
        decoders.append(decoder)
        return decoder

    yield factory
    for decoder in decoders:
        decoder.close()
