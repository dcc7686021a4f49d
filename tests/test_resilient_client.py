"""ResilientClient retry / key rotation behaviour with a scripted genai client."""

import asyncio
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from worldforge.utils.resilient_client import ResilientClient, RetriesExhausted, classify_error

FAST_SETTINGS = SimpleNamespace(resilient_max_retries=3, resilient_base_delay=0)


class _Models:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _factory(models, created):
    def factory(api_key=None, http_options=None, **kwargs):
        created.append(api_key)
        return SimpleNamespace(aio=SimpleNamespace(models=models))
    return factory


def _call(client):
    return asyncio.run(client.aio.models.generate_content(model="m", contents="hi"))


class TestClassifyError:

    def test_kinds(self):
        assert classify_error(Exception("429 RESOURCE_EXHAUSTED")) == "rate_limit"
        assert classify_error(Exception("503 UNAVAILABLE")) == "overload"
        assert classify_error(ValueError("bad request")) is None


@patch("worldforge.utils.resilient_client.get_settings", return_value=FAST_SETTINGS)
class TestResilientClient:

    def test_passes_through(self, _settings):
        models = _Models(["ok"])
        created = []
        client = ResilientClient(api_key="k1", client_factory=_factory(models, created))
        assert _call(client) == "ok"
        assert created == ["k1"]
        assert models.calls == [{"model": "m", "contents": "hi"}]

    def test_rate_limit_rotates_key(self, _settings):
        models = _Models([Exception("429 Too Many Requests"), "ok"])
        created = []
        with patch("worldforge.utils.resilient_client.get_api_key", return_value="k2"), \
                patch("worldforge.utils.resilient_client.mark_key_exhausted") as exhausted:
            client = ResilientClient(api_key="k1", client_factory=_factory(models, created))
            assert _call(client) == "ok"
        exhausted.assert_called_once_with("k1")
        assert created == ["k1", "k2"]

    def test_overload_retries_without_rotation(self, _settings):
        models = _Models([Exception("503 UNAVAILABLE"), "ok"])
        created = []
        with patch("worldforge.utils.resilient_client.mark_key_exhausted") as exhausted:
            client = ResilientClient(api_key="k1", client_factory=_factory(models, created))
            assert _call(client) == "ok"
        exhausted.assert_not_called()
        assert created == ["k1"]

    def test_non_retryable_raises_immediately(self, _settings):
        models = _Models([ValueError("invalid argument"), "never"])
        client = ResilientClient(api_key="k1", client_factory=_factory(models, []))
        with pytest.raises(ValueError):
            _call(client)
        assert len(models.calls) == 1

    def test_gives_up_after_max_retries(self, _settings):
        models = _Models([Exception("503 UNAVAILABLE")] * 3)
        client = ResilientClient(api_key="k1", client_factory=_factory(models, []))
        with pytest.raises(RetriesExhausted):
            _call(client)
        assert len(models.calls) == 3
