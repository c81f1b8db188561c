import pytest

from compliancedb import main


class _FakeResult:
    def __init__(self, versions):
        self._versions = versions

    def fetchall(self):
        return [(v,) for v in self._versions]


class _FakeSession:
    def __init__(self, versions):
        self._versions = versions

    def execute(self, _query):
        return _FakeResult(self._versions)

    def close(self):
        pass


def test_preflight_is_noop_when_not_strict(monkeypatch):
    monkeypatch.setenv("SCHEMA_STRICT", "0")
    monkeypatch.setattr(main, "WriteSessionLocal", lambda: pytest.fail("database should not be touched"))
    main._enforce_schema_head_sync_if_configured()


def test_preflight_raises_when_behind(monkeypatch):
    monkeypatch.setenv("SCHEMA_STRICT", "1")
    monkeypatch.setattr(main, "WriteSessionLocal", lambda: _FakeSession(["0000_old"]))

    with pytest.raises(RuntimeError):
        main._enforce_schema_head_sync_if_configured()


def test_preflight_passes_at_shipped_head(monkeypatch):
    monkeypatch.setenv("SCHEMA_STRICT", "true")
    monkeypatch.setattr(main, "WriteSessionLocal", lambda: _FakeSession(["a1c3e5f7b9d0"]))

    main._enforce_schema_head_sync_if_configured()
