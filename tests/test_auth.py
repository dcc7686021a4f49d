import pytest

from worldforge.utils.auth import KeyRotator, _keys_from_env


class _Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestKeyRotator:

    def test_round_robin(self):
        rotator = KeyRotator(keys=["k1", "k2", "k3"], clock=_Clock())
        assert [rotator.get_next_key() for _ in range(4)] == ["k1", "k2", "k3", "k1"]

    def test_exhausted_key_is_skipped_until_cooldown_ends(self):
        clock = _Clock()
        rotator = KeyRotator(keys=["k1", "k2"], clock=clock)
        rotator.mark_exhausted("k1", duration=30)
        assert [rotator.get_next_key() for _ in range(3)] == ["k2", "k2", "k2"]
        clock.now += 31
        assert "k1" in {rotator.get_next_key() for _ in range(2)}

    def test_all_exhausted_waits_for_earliest(self):
        clock = _Clock()
        sleeps = []
        rotator = KeyRotator(keys=["k1", "k2"], clock=clock, sleep=sleeps.append)
        rotator.mark_exhausted("k1", duration=60)
        rotator.mark_exhausted("k2", duration=10)
        assert rotator.get_next_key() == "k2"
        assert sleeps == [10]

    def test_default_cooldown_from_settings(self):
        clock = _Clock()
        rotator = KeyRotator(keys=["k1"], clock=clock)
        rotator.mark_exhausted("k1")
        assert rotator._cooldowns["k1"] == clock.now + 60


class TestKeysFromEnv:

    def test_comma_separated(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_API_KEYS", " a, b ,,c ")
        assert _keys_from_env() == ["a", "b", "c"]

    def test_single_key(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_API_KEYS", raising=False)
        monkeypatch.setenv("GOOGLE_API_KEY", "solo")
        assert _keys_from_env() == ["solo"]

    def test_missing(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_API_KEYS", raising=False)
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        with pytest.raises(ValueError):
            _keys_from_env()
