"""Per-job ephemeral GnuPG keyrings.

Every signer job imports its key into a fresh GnuPG home that no other
job can see, and the home is destroyed when the job ends, whether it
succeeded or not.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from types import TracebackType

from shipwright.core.commands import CommandFailed, run_command
from shipwright.core.errors import SignError

logger = logging.getLogger(__name__)


class EphemeralKeyring:
    """Context manager owning a private ``GNUPGHOME``.

    Parameters
    ----------
    parent:
        Directory to create the home in (the signer job's work directory).
    gpg:
        GnuPG executable.

    Examples
    --------
    ::

        with EphemeralKeyring(job_dir) as keyring:
            keyring.import_key(material)
            run_command([...], env=keyring.env)
    """

    def __init__(self, parent: Path, *, gpg: str = "gpg") -> None:
        self._parent = Path(parent)
        self.gpg = gpg
        self._home: Path | None = None

    @property
    def home(self) -> Path:
        if self._home is None:
            msg = "Keyring is not open"
            raise SignError(msg)
        return self._home

    @property
    def env(self) -> dict[str, str]:
        """Environment pointing GnuPG-based tools at this keyring."""
        return {"GNUPGHOME": str(self.home)}

    def __enter__(self) -> EphemeralKeyring:
        self._parent.mkdir(parents=True, exist_ok=True)
        self._home = Path(tempfile.mkdtemp(prefix="gnupg-", dir=self._parent))
        os.chmod(self._home, 0o700)
        logger.debug("Opened keyring %s", self._home)
        return self

    def import_key(self, material: bytes) -> None:
        """Import exported key material into the keyring."""
        key_file = self.home / "import.key"
        key_file.write_bytes(material)
        os.chmod(key_file, 0o600)
        try:
            run_command(
                [self.gpg, "--homedir", str(self.home), "--batch", "--yes",
                 "--no-tty", "--import", str(key_file)],
                env=self.env,
            )
        except CommandFailed as exc:
            msg = f"Could not import signing key: {exc}"
            raise SignError(msg) from exc
        finally:
            key_file.unlink(missing_ok=True)

    def close(self) -> None:
        if self._home is None:
            return
        home, self._home = self._home, None
        try:
            run_command(
                ["gpgconf", "--homedir", str(home), "--kill", "all"],
                env={"GNUPGHOME": str(home)},
            )
        except CommandFailed as exc:
            logger.debug("gpgconf --kill failed for %s: %s", home, exc)
        shutil.rmtree(home, ignore_errors=True)
        logger.debug("Destroyed keyring %s", home)

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
