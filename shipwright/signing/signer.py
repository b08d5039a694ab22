"""Package signer — signs one ArtifactSet with the project key.

Signing conventions differ per format and are strategy objects keyed by
``SigningConvention``:

``detached``
    ``gpg --detach-sign --armor`` writes ``<file>.asc`` next to the file.
``dpkg-sig``
    ``dpkg-sig --sign builder`` embeds the signature in the ``.deb``.
``rpm``
    ``rpm --resign`` embeds the signature in the ``.rpm``.

Files are signed on private copies. The store is updated only once every
file in the set has been signed, so a failure leaves the set untouched.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Protocol

from shipwright.bridge.secret_store import SecretStore
from shipwright.core.artifact_store import ArtifactStore, SignedFile
from shipwright.core.commands import CommandFailed, run_command
from shipwright.core.context import ExecutionContext
from shipwright.core.errors import (
    ArtifactConflictError,
    ArtifactIntegrityError,
    ArtifactNotFoundError,
    SecretUnavailable,
    SignError,
)
from shipwright.models.artifacts import ArtifactSet
from shipwright.models.config import SigningConvention, TargetConfig
from shipwright.signing.keyring import EphemeralKeyring

logger = logging.getLogger(__name__)


def sign_job_id(target: TargetConfig) -> str:
    return f"sign-{target.name}"


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class SigningStrategy(Protocol):
    """Signs one file in place (or next to it) using *keyring*."""

    def sign(self, path: Path, key_id: str, keyring: EphemeralKeyring) -> SignedFile:
        ...


class DetachedSignature:
    """Armored detached signature, for archives that cannot carry one."""

    def sign(self, path: Path, key_id: str, keyring: EphemeralKeyring) -> SignedFile:
        asc = path.with_name(f"{path.name}.asc")
        run_command(
            [keyring.gpg, "--homedir", str(keyring.home), "--batch", "--yes",
             "--no-tty", "--local-user", key_id, "--armor", "--detach-sign",
             "--output", str(asc), str(path)],
            env=keyring.env,
        )
        if not asc.is_file():
            msg = f"gpg did not produce {asc.name}"
            raise SignError(msg)
        return SignedFile(
            filename=path.name, path=path, signature=asc.name, detached_path=asc
        )


class DpkgSigSignature:
    """Embedded Debian package signature with the ``builder`` role."""

    def sign(self, path: Path, key_id: str, keyring: EphemeralKeyring) -> SignedFile:
        run_command(
            ["dpkg-sig", "-g", f"--batch --no-tty --homedir {keyring.home}",
             "--sign", "builder", "-k", key_id, str(path)],
            env=keyring.env,
        )
        return SignedFile(filename=path.name, path=path, signature="embedded")


class RpmSignature:
    """Embedded RPM header signature."""

    def sign(self, path: Path, key_id: str, keyring: EphemeralKeyring) -> SignedFile:
        run_command(
            ["rpm", "--resign", str(path),
             "--define", f"_gpg_name {key_id}",
             "--define", f"_gpg_path {keyring.home}"],
            env=keyring.env,
        )
        return SignedFile(filename=path.name, path=path, signature="embedded")


DEFAULT_STRATEGIES: dict[SigningConvention, SigningStrategy] = {
    SigningConvention.DETACHED: DetachedSignature(),
    SigningConvention.DPKG_SIG: DpkgSigSignature(),
    SigningConvention.RPM: RpmSignature(),
}


# ---------------------------------------------------------------------------
# Signer
# ---------------------------------------------------------------------------


class PackageSigner:
    """Signs stored artifact sets with keys fetched from the secret store.

    Parameters
    ----------
    store:
        Artifact store holding the unsigned sets.
    strategies:
        Convention -> strategy mapping. Defaults to the GnuPG-based tools.
    keyring_factory:
        Called with the job directory to create each job's keyring.
    """

    def __init__(
        self,
        store: ArtifactStore,
        *,
        strategies: Mapping[SigningConvention, SigningStrategy] | None = None,
        keyring_factory: Callable[[Path], EphemeralKeyring] = EphemeralKeyring,
    ) -> None:
        self._store = store
        self._strategies = dict(strategies or DEFAULT_STRATEGIES)
        self._keyring_factory = keyring_factory

    def _fetch_key(self, secrets: SecretStore, key_id: str) -> bytes:
        try:
            return secrets.fetch_signing_key(key_id)
        except SecretUnavailable as exc:
            msg = f"Signing key {key_id} unavailable: {exc}"
            raise SignError(msg) from exc

    def sign(
        self,
        context: ExecutionContext,
        target: TargetConfig,
        key_id: str,
        *,
        job_id: str | None = None,
    ) -> ArtifactSet:
        """Sign every package of *target*'s stored set.

        Raises
        ------
        SignError
            Key unavailable, set missing or corrupt, or any file failed to
            sign. The stored set is left unsigned in every case.
        """
        job_id = job_id or sign_job_id(target)
        try:
            strategy = self._strategies[target.signing]
        except KeyError:
            msg = f"No signing strategy for convention {target.signing.value!r}"
            raise SignError(msg) from None

        try:
            artifact_set = self._store.load_set(target.namespace)
        except (ArtifactNotFoundError, ArtifactIntegrityError) as exc:
            msg = f"{target.label}: cannot sign: {exc}"
            raise SignError(msg) from exc
        if artifact_set.signed:
            msg = f"{target.label}: set is already signed by {artifact_set.signed_by}"
            raise SignError(msg)

        job_dir = context.job_dir(job_id)
        staging = job_dir / "signing"
        if staging.exists():
            shutil.rmtree(staging)
        staging.mkdir(parents=True)
        try:
            for name in artifact_set.filenames:
                shutil.copy2(self._store.path_for(target.namespace, name), staging / name)

            material = self._fetch_key(context.secrets, key_id)
            signed: list[SignedFile] = []
            with self._keyring_factory(job_dir) as keyring:
                keyring.import_key(material)
                for name in artifact_set.filenames:
                    try:
                        signed.append(strategy.sign(staging / name, key_id, keyring))
                    except CommandFailed as exc:
                        msg = f"{target.label}: signing {name} failed: {exc}"
                        raise SignError(msg) from exc
                    logger.info("Signed %s (%s)", name, target.signing.value)

            try:
                return self._store.commit_signed(
                    target.namespace, signed, signed_by=job_id, key_id=key_id
                )
            except ArtifactConflictError as exc:
                msg = f"{target.label}: {exc}"
                raise SignError(msg) from exc
        finally:
            shutil.rmtree(staging, ignore_errors=True)
