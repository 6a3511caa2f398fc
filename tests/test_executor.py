"""Tests for the request executor."""

import threading
import time

import httpx
import pytest

from conftest import BASE_URL, chat_body
from llm_aisdk.core.context import CallContext
from llm_aisdk.core.exceptions import ErrorKind, ErrorRecord, ProviderAPIError
from llm_aisdk.impl.executor import InFlight, RequestDescriptor
from llm_aisdk.impl.loadbalancer import CredentialPool


def _descriptor(pool, method="POST", path="/chat/completions", body=None, options=(), response_type=None):
    return RequestDescriptor(
        provider="mock",
        method=method,
        base_url=BASE_URL,
        path=path,
        pool=pool,
        options=options,
        body=body if body is not None else {"model": "deepseek-chat", "messages": []},
        response_type=response_type,
    )


class RecordingHooks:
    def __init__(self):
        self.events = []

    def on_request_start(self, provider, method, url):
        self.events.append(("start", provider, method, url))

    def on_request_end(self, provider, outcome, elapsed, request_id=""):
        self.events.append(("end", provider, outcome, request_id))

    def on_error(self, provider, record):
        self.events.append(("error", provider, record.kind))


class TestExecuteSuccess:
    def test_decodes_json_and_request_id(self, make_executor, metrics):
        def handler(request):
            return httpx.Response(200, json=chat_body(usage={"total_tokens": 5}), headers={"x-request-id": "req-ok"})

        executor = make_executor(handler)
        response = executor.execute(_descriptor(CredentialPool(["k1"])))

        assert response.data["choices"][0]["message"]["content"] == "hello"
        assert response.request_id == "req-ok"
        assert response.status_code == 200
        assert response.usage == {"total_tokens": 5}
        snapshot = metrics.snapshot()["mock"]
        assert snapshot.requests == 1
        assert snapshot.successes == 1
        assert snapshot.bytes_transferred > 0

    def test_request_shape(self, make_executor):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("authorization")
            seen["trace"] = request.headers.get("x-trace-id")
            seen["body"] = request.content
            return httpx.Response(200, json={})

        executor = make_executor(handler)
        executor.execute(_descriptor(CredentialPool(["sk-one"]), options=({"headers": {"x-trace-id": "t-1"}},)))

        assert seen["method"] == "POST"
        assert seen["url"] == BASE_URL + "/chat/completions"
        assert seen["auth"] == "Bearer sk-one"
        assert seen["trace"] == "t-1"
        assert b"deepseek-chat" in seen["body"]

    def test_body_option_overrides_descriptor_body(self, make_executor):
        seen = {}

        def handler(request):
            seen["body"] = request.content
            return httpx.Response(200, json={})

        executor = make_executor(handler)
        executor.execute(_descriptor(CredentialPool(["k1"]), options=({"body": {"model": "override"}},)))
        assert b"override" in seen["body"]

    def test_get_without_body(self, make_executor):
        def handler(request):
            assert request.method == "GET"
            return httpx.Response(200, json={"object": "list", "data": [{"id": "deepseek-chat"}]})

        executor = make_executor(handler)
        response = executor.execute(_descriptor(CredentialPool(["k1"]), method="GET", path="/models"))
        assert response.data["data"][0]["id"] == "deepseek-chat"

    def test_response_type_is_applied(self, make_executor):
        def handler(request):
            return httpx.Response(200, json=chat_body("typed"))

        executor = make_executor(handler)
        response = executor.execute(
            _descriptor(CredentialPool(["k1"]), response_type=lambda d: d["choices"][0]["message"]["content"])
        )
        assert response.data == "typed"

    def test_three_credentials_six_calls(self, make_executor, metrics):
        """Calls cycle credentials with period 3 and each success is counted once."""
        keys = ["k1", "k2", "k3"]
        used = []

        def handler(request):
            used.append(request.headers["authorization"].split(" ", 1)[1])
            return httpx.Response(200, json=chat_body())

        executor = make_executor(handler)
        pool = CredentialPool(keys)
        for i in range(6):
            executor.execute(_descriptor(pool))
            assert metrics.snapshot()["mock"].successes == i + 1

        assert used == [keys[i % 3] for i in range(6)]
        assert used[2] == used[5]
        assert metrics.snapshot()["mock"].requests == 6

    def test_hooks_observe_lifecycle(self, make_executor):
        hooks = RecordingHooks()

        def handler(request):
            return httpx.Response(200, json={}, headers={"x-request-id": "req-h"})

        executor = make_executor(handler, hooks=hooks)
        executor.execute(_descriptor(CredentialPool(["k1"])))
        assert hooks.events[0][0] == "start"
        assert hooks.events[-1] == ("end", "mock", "success", "req-h")


class TestExecuteFailure:
    def test_provider_error_keeps_message_and_request_id(self, make_executor, metrics):
        def handler(request):
            return httpx.Response(
                400,
                json={"error": {"message": "Model Not Exist", "type": "invalid_request_error"}},
                headers={"x-request-id": "req-bad"},
            )

        executor = make_executor(handler)
        with pytest.raises(ErrorRecord) as exc_info:
            executor.execute(_descriptor(CredentialPool(["k1"])))

        record = exc_info.value
        assert record.kind is ErrorKind.PROVIDER
        assert record.request_id == "req-bad"
        assert isinstance(record.cause, ProviderAPIError)
        assert record.cause.status_code == 400
        assert record.cause.message == "Model Not Exist"
        assert not record.retryable
        assert metrics.snapshot()["mock"].failures == {"provider": 1}

    def test_rate_limit_cools_down_credential(self, make_executor):
        def handler(request):
            if request.headers["authorization"] == "Bearer k1":
                return httpx.Response(429, json={"error": {"message": "rate limited"}}, headers={"retry-after": "30"})
            return httpx.Response(200, json={})

        executor = make_executor(handler)
        pool = CredentialPool(["k1", "k2"])
        with pytest.raises(ErrorRecord) as exc_info:
            executor.execute(_descriptor(pool))
        assert exc_info.value.retryable
        assert pool.healthy_count() == 1
        for _ in range(3):
            executor.execute(_descriptor(pool))

    def test_network_error(self, make_executor, metrics):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        executor = make_executor(handler)
        with pytest.raises(ErrorRecord) as exc_info:
            executor.execute(_descriptor(CredentialPool(["k1"])))
        assert exc_info.value.kind is ErrorKind.NETWORK
        assert exc_info.value.retryable
        assert metrics.snapshot()["mock"].failures == {"network": 1}

    def test_transport_timeout(self, make_executor):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        executor = make_executor(handler)
        with pytest.raises(ErrorRecord) as exc_info:
            executor.execute(_descriptor(CredentialPool(["k1"])))
        assert exc_info.value.kind is ErrorKind.DEADLINE_EXCEEDED

    def test_undecodable_body_is_unknown(self, make_executor, metrics):
        def handler(request):
            return httpx.Response(200, content=b"<html>not json</html>", headers={"x-request-id": "req-html"})

        executor = make_executor(handler)
        with pytest.raises(ErrorRecord) as exc_info:
            executor.execute(_descriptor(CredentialPool(["k1"])))
        assert exc_info.value.kind is ErrorKind.UNKNOWN
        assert exc_info.value.request_id == "req-html"
        assert metrics.snapshot()["mock"].failures == {"unknown": 1}

    def test_error_chain_is_preserved(self, make_executor):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        executor = make_executor(handler)
        with pytest.raises(ErrorRecord) as exc_info:
            executor.execute(_descriptor(CredentialPool(["k1"])))
        assert exc_info.value.__cause__ is exc_info.value.cause
        assert isinstance(exc_info.value.root_cause(), httpx.ConnectError)


class TestCancellation:
    def test_deadline_is_enforced_by_executor(self, make_executor, metrics):
        def handler(request):
            time.sleep(1.0)
            return httpx.Response(200, json={})

        executor = make_executor(handler)
        started = time.monotonic()
        with pytest.raises(ErrorRecord) as exc_info:
            executor.execute(_descriptor(CredentialPool(["k1"]), options=({"timeout": 0.2},)))
        elapsed = time.monotonic() - started

        assert exc_info.value.kind is ErrorKind.DEADLINE_EXCEEDED
        assert elapsed < 0.8
        assert metrics.snapshot()["mock"].failures == {"deadline_exceeded": 1}

    def test_cancel_returns_promptly(self, make_executor):
        def handler(request):
            time.sleep(1.0)
            return httpx.Response(200, json={})

        executor = make_executor(handler)
        ctx = CallContext()
        threading.Timer(0.1, ctx.cancel).start()
        started = time.monotonic()
        with pytest.raises(ErrorRecord) as exc_info:
            executor.execute(_descriptor(CredentialPool(["k1"])), ctx)
        assert exc_info.value.kind is ErrorKind.CANCELED
        assert time.monotonic() - started < 0.8

    def test_already_cancelled_context(self, make_executor):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        executor = make_executor(handler)
        ctx = CallContext()
        ctx.cancel()
        with pytest.raises(ErrorRecord) as exc_info:
            executor.execute(_descriptor(CredentialPool(["k1"])), ctx)
        assert exc_info.value.kind is ErrorKind.CANCELED
        assert calls == []

    def test_parent_deadline_bounds_call(self, make_executor):
        def handler(request):
            time.sleep(1.0)
            return httpx.Response(200, json={})

        executor = make_executor(handler)
        with pytest.raises(ErrorRecord) as exc_info:
            executor.execute(_descriptor(CredentialPool(["k1"])), CallContext(timeout=0.2))
        assert exc_info.value.kind is ErrorKind.DEADLINE_EXCEEDED

    def test_cancel_interrupts_body_read(self, make_executor):
        produced = []

        def body():
            yield b'{"choices": ['
            for i in range(40):
                produced.append(i)
                time.sleep(0.05)
                yield b" "
            yield b"]}"

        def handler(request):
            return httpx.Response(200, content=body())

        executor = make_executor(handler)
        ctx = CallContext()
        threading.Timer(0.2, ctx.cancel).start()
        with pytest.raises(ErrorRecord) as exc_info:
            executor.execute(_descriptor(CredentialPool(["k1"])), ctx)
        assert exc_info.value.kind is ErrorKind.CANCELED

        time.sleep(0.3)
        read_after_cancel = len(produced)
        time.sleep(0.3)
        assert len(produced) == read_after_cancel
        assert read_after_cancel < 40

    def test_deadline_interrupts_body_read(self, make_executor):
        produced = []

        def body():
            for i in range(40):
                produced.append(i)
                time.sleep(0.05)
                yield b" "
            yield b"{}"

        executor = make_executor(lambda request: httpx.Response(200, content=body()))
        with pytest.raises(ErrorRecord) as exc_info:
            executor.execute(_descriptor(CredentialPool(["k1"]), options=({"timeout": 0.2},)))
        assert exc_info.value.kind is ErrorKind.DEADLINE_EXCEEDED

        time.sleep(0.3)
        read_after_deadline = len(produced)
        time.sleep(0.3)
        assert len(produced) == read_after_deadline
        assert read_after_deadline < 40


class TestInFlight:
    def test_abort_closes_attached_response(self):
        inflight = InFlight()
        response = httpx.Response(200, content=b"{}")
        assert inflight.attach(response)
        inflight.abort()
        assert inflight.aborted
        assert response.is_closed

    def test_late_response_is_closed_on_arrival(self):
        inflight = InFlight()
        inflight.abort()
        response = httpx.Response(200, content=b"{}")
        assert not inflight.attach(response)
        assert response.is_closed
