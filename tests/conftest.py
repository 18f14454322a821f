"""Shared fixtures."""

import pytest

from covgate.config import _ENV_OVERRIDES


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """CI runners export GITHUB_TOKEN, AWS_REGION, ...; keep them out of config tests."""
    for _section, _key, env_var in _ENV_OVERRIDES:
        monkeypatch.delenv(env_var, raising=False)


class FakeStore:
    """In-memory ObjectStore; *failures* maps a key to exceptions raised in order."""

    def __init__(self, keys=(), failures=None):
        self.objects = {key: b"" for key in keys}
        self.failures = {key: list(excs) for key, excs in (failures or {}).items()}
        self.calls = []

    def list_keys(self, prefix):
        self.calls.append(("list", prefix))
        self._maybe_fail(("list", prefix))
        return sorted(k for k in self.objects if k.startswith(prefix))

    def put_object(self, key, path):
        self.calls.append(("put", key))
        self._maybe_fail(key)
        with open(path, "rb") as f:
            self.objects[key] = f.read()

    def delete_object(self, key):
        self.calls.append(("delete", key))
        self._maybe_fail(key)
        self.objects.pop(key, None)

    def _maybe_fail(self, key):
        pending = self.failures.get(key)
        if pending:
            raise pending.pop(0)


@pytest.fixture
def make_store():
    return FakeStore
