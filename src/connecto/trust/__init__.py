"""Trust — worker verification levels and badges."""

from connecto.trust.verification import (
    CustomerVerification,
    TrustBadge,
    VerificationLevel,
    WorkerProfile,
    WorkerVerification,
    verify_customer,
    verify_worker,
)

__all__ = [
    "CustomerVerification",
    "TrustBadge",
    "VerificationLevel",
    "WorkerProfile",
    "WorkerVerification",
    "verify_customer",
    "verify_worker",
]
