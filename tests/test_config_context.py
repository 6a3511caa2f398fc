"""Tests for configuration models and the call context."""

import datetime
import json
import time

import pytest

from llm_aisdk.core.config import CallOptions, ProviderConfig, SDKConfig
from llm_aisdk.core.context import CallContext
from llm_aisdk.core.exceptions import CanceledError, ConfigurationError, DeadlineExceededError


class TestCallOptions:
    def test_later_layers_win(self):
        opts = CallOptions.merge(CallOptions.defaults(), {"timeout": 10}, {"timeout": 5})
        assert opts.timeout == 5.0
        assert opts.stream_return_interval_timeout == 30.0
        assert opts.empty_messages_limit == 300

    def test_none_never_overrides(self):
        opts = CallOptions.merge({"timeout": 10}, {"timeout": None})
        assert opts.timeout == 10.0

    def test_unknown_keys_ignored_and_headers_merged(self):
        opts = CallOptions.merge({"headers": {"a": "1"}, "retries": 3}, {"headers": {"b": "2"}})
        assert opts.headers == {"a": "1", "b": "2"}
        assert not hasattr(opts, "retries")

    def test_timedelta_durations(self):
        opts = CallOptions.merge({"timeout": datetime.timedelta(minutes=2), "stream_return_interval_timeout": datetime.timedelta(seconds=3)})
        assert opts.timeout == 120.0
        assert opts.stream_return_interval_timeout == 3.0

    def test_to_dict_drops_none(self):
        assert CallOptions(timeout=1.0).to_dict() == {"timeout": 1.0}


class TestSDKConfig:
    def test_from_dict(self):
        config = SDKConfig.from_dict({
            "providers": {
                "deepseek": {"base_url": "https://api.deepseek.com", "api_keys": "sk-1, sk-2", "timeout": 60},
                "openai": {"base_url": "https://api.openai.com/v1", "api_keys": ["sk-3"]},
            }
        })
        assert config.providers["deepseek"].api_keys == ["sk-1", "sk-2"]
        assert config.providers["deepseek"].timeout == 60.0
        assert config.to_dict()["providers"]["openai"] == {"base_url": "https://api.openai.com/v1", "api_keys": ["sk-3"]}

    def test_missing_providers(self):
        with pytest.raises(ConfigurationError):
            SDKConfig.from_dict({"provider": {}})

    def test_validate_missing_api_keys(self):
        with pytest.raises(ConfigurationError, match="api_keys"):
            ProviderConfig(base_url="https://api.deepseek.com").validate("deepseek")

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"providers": {"openai": {"base_url": "u", "api_keys": ["k"]}}}), encoding="utf-8")
        assert SDKConfig.from_json_file(str(path)).providers["openai"].api_keys == ["k"]

    def test_from_json_file_errors(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            SDKConfig.from_json_file(str(bad))
        with pytest.raises(ConfigurationError):
            SDKConfig.from_json_file(str(tmp_path / "missing.json"))


class TestCallContext:
    def test_cancel_propagates_to_children(self):
        parent = CallContext()
        child = parent.with_timeout(10)
        assert child.err() is None
        parent.cancel()
        assert isinstance(child.err(), CanceledError)

    def test_child_takes_earlier_deadline(self):
        parent = CallContext(timeout=0.1)
        child = CallContext(timeout=10, parent=parent)
        assert child.deadline == parent.deadline
        time.sleep(0.15)
        assert isinstance(child.err(), DeadlineExceededError)

    def test_closers_run_on_cancel(self):
        ctx = CallContext()
        closed = []
        ctx.add_closer(lambda: closed.append("a"))
        remove = ctx.add_closer(lambda: closed.append("b"))
        remove()
        ctx.cancel()
        ctx.cancel()
        assert closed == ["a"]

    def test_closer_after_cancel_runs_immediately(self):
        ctx = CallContext()
        ctx.cancel()
        closed = []
        ctx.add_closer(lambda: closed.append(True))
        assert closed == [True]

    def test_is_cancelled_func(self):
        flag = {"stop": False}
        ctx = CallContext(is_cancelled_func=lambda: flag["stop"])
        assert not ctx.is_cancelled()
        flag["stop"] = True
        with pytest.raises(CanceledError):
            ctx.check()
