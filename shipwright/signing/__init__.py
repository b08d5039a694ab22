"""Package signing — per-format conventions over per-job GnuPG keyrings."""

from shipwright.signing.keyring import EphemeralKeyring
from shipwright.signing.signer import (
    DEFAULT_STRATEGIES,
    DetachedSignature,
    DpkgSigSignature,
    PackageSigner,
    RpmSignature,
    SigningStrategy,
    sign_job_id,
)

__all__ = [
    "DEFAULT_STRATEGIES",
    "DetachedSignature",
    "DpkgSigSignature",
    "EphemeralKeyring",
    "PackageSigner",
    "RpmSignature",
    "SigningStrategy",
    "sign_job_id",
]
