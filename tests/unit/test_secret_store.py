"""Tests for the secret store backends."""

from __future__ import annotations

import base64

import pytest

from shipwright.bridge.secret_store import (
    EnvironmentSecretStore,
    RepoCredential,
    SecretStore,
    StaticSecretStore,
)
from shipwright.core.errors import SecretUnavailable


class TestEnvironmentSecretStore:
    def test_signing_key_decoded(self):
        env = {"SHIPWRIGHT_SIGNING_KEY_56C464BAAC421453": base64.b64encode(b"key").decode()}
        store = EnvironmentSecretStore(env)
        assert store.fetch_signing_key("56C464BAAC421453") == b"key"

    def test_missing_key(self):
        with pytest.raises(SecretUnavailable, match="SHIPWRIGHT_SIGNING_KEY_ABC"):
            EnvironmentSecretStore({}).fetch_signing_key("abc")

    def test_invalid_base64(self):
        store = EnvironmentSecretStore({"SHIPWRIGHT_SIGNING_KEY_K": "not base64!"})
        with pytest.raises(SecretUnavailable, match="base64"):
            store.fetch_signing_key("K")

    def test_repo_credential(self):
        env = {
            "SHIPWRIGHT_REPO_TOKEN_SURFACEBOT": "t0k3n",
            "SHIPWRIGHT_REPO_USER_SURFACEBOT": "bot-user",
        }
        credential = EnvironmentSecretStore(env).fetch_repo_credential("surfacebot")
        assert credential == RepoCredential(username="bot-user", token="t0k3n")

    def test_repo_username_defaults_to_id(self):
        env = {"SHIPWRIGHT_REPO_TOKEN_LINUX_SURFACE": "t"}
        credential = EnvironmentSecretStore(env).fetch_repo_credential("linux-surface")
        assert credential.username == "linux-surface"

    def test_custom_prefix(self):
        store = EnvironmentSecretStore({"CI_REPO_TOKEN_X": "t"}, prefix="CI_")
        assert store.fetch_repo_credential("x").token == "t"


class TestStaticSecretStore:
    def test_lookup(self):
        store = StaticSecretStore({"K": b"k"}, {"r": RepoCredential(username="u", token="t")})
        assert store.fetch_signing_key("K") == b"k"
        assert store.fetch_repo_credential("r").username == "u"

    def test_unknown(self):
        store = StaticSecretStore()
        with pytest.raises(SecretUnavailable):
            store.fetch_signing_key("K")
        with pytest.raises(SecretUnavailable):
            store.fetch_repo_credential("r")

    def test_satisfies_protocol(self):
        assert isinstance(StaticSecretStore(), SecretStore)
        assert isinstance(EnvironmentSecretStore({}), SecretStore)


def test_credential_str_hides_token():
    credential = RepoCredential(username="bot", token="hunter2")
    assert "hunter2" not in str(credential)
    assert "hunter2" not in repr(credential)
