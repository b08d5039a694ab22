"""Secret store bridge — signing keys and repository push credentials.

The real credential store is an external collaborator. Jobs reach it only
through the ``SecretStore`` protocol, fetching material at the moment they
need it so nothing outlives the job that asked for it.

Backends
--------
``EnvironmentSecretStore``
    Reads CI-style secrets from environment variables. Signing keys are
    base64-encoded exported key blocks (``SHIPWRIGHT_SIGNING_KEY_<ID>``),
    repository tokens live in ``SHIPWRIGHT_REPO_TOKEN_<ID>``.
``StaticSecretStore``
    In-memory mapping, for embedding and tests.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import re
from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from shipwright.core.errors import SecretUnavailable

logger = logging.getLogger(__name__)


class RepoCredential(BaseModel):
    """Push credential for one downstream repository."""

    model_config = ConfigDict(frozen=True)

    username: str
    token: str

    def __repr__(self) -> str:
        return f"RepoCredential(username={self.username!r}, token='***')"

    __str__ = __repr__


@runtime_checkable
class SecretStore(Protocol):
    """Protocol every secret backend satisfies."""

    def fetch_signing_key(self, key_id: str) -> bytes:
        """Return exported key material for *key_id*.

        Raises ``SecretUnavailable`` if the id is unknown or access is denied.
        """
        ...

    def fetch_repo_credential(self, repo_id: str) -> RepoCredential:
        """Return the push credential for *repo_id*.

        Raises ``SecretUnavailable`` if the id is unknown or access is denied.
        """
        ...


def _env_suffix(identifier: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "_", identifier).upper()


class EnvironmentSecretStore:
    """Secret backend reading environment variables.

    Parameters
    ----------
    environ:
        Mapping to read from. Defaults to ``os.environ``.
    prefix:
        Variable name prefix.
    """

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        *,
        prefix: str = "SHIPWRIGHT_",
    ) -> None:
        self._environ = environ if environ is not None else os.environ
        self._prefix = prefix

    def _lookup(self, kind: str, identifier: str) -> str:
        name = f"{self._prefix}{kind}_{_env_suffix(identifier)}"
        value = self._environ.get(name, "")
        if not value:
            msg = f"Secret {name} is not set"
            raise SecretUnavailable(msg)
        return value

    def fetch_signing_key(self, key_id: str) -> bytes:
        encoded = self._lookup("SIGNING_KEY", key_id)
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            msg = f"Signing key {key_id} is not valid base64"
            raise SecretUnavailable(msg) from exc

    def fetch_repo_credential(self, repo_id: str) -> RepoCredential:
        token = self._lookup("REPO_TOKEN", repo_id)
        username = self._environ.get(
            f"{self._prefix}REPO_USER_{_env_suffix(repo_id)}", repo_id
        )
        logger.debug("Loaded push credential for %s", repo_id)
        return RepoCredential(username=username, token=token)


class StaticSecretStore:
    """In-memory secret backend."""

    def __init__(
        self,
        signing_keys: Mapping[str, bytes] | None = None,
        credentials: Mapping[str, RepoCredential] | None = None,
    ) -> None:
        self._signing_keys = dict(signing_keys or {})
        self._credentials = dict(credentials or {})

    def fetch_signing_key(self, key_id: str) -> bytes:
        try:
            return self._signing_keys[key_id]
        except KeyError:
            msg = f"Unknown signing key {key_id}"
            raise SecretUnavailable(msg) from None

    def fetch_repo_credential(self, repo_id: str) -> RepoCredential:
        try:
            return self._credentials[repo_id]
        except KeyError:
            msg = f"No credential for repository {repo_id}"
            raise SecretUnavailable(msg) from None
