"""Request and result models for certificate issuance."""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from kconfig.lib.kubeconfig import ConnectionProfile

REQUEST_NAME_SEPARATOR = ":"


@dataclass(frozen=True)
class IdentityRequest:
    """Identity to request a client certificate for.

    ``request_name`` doubles as the name of the remote signing request, so
    re-running for the same subject and groups replaces the earlier request.
    """

    subject_name: str
    groups: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.subject_name:
            raise ValueError("subject name must not be empty")
        if isinstance(self.groups, str):
            raise ValueError("groups must be a sequence of group names, not a string")
        # Accept any sequence but store a tuple so the request stays hashable
        object.__setattr__(self, "groups", tuple(self.groups))
        if not self.groups:
            raise ValueError("at least one group is required")
        if any(not group for group in self.groups):
            raise ValueError("group names must not be empty")

    @property
    def request_name(self) -> str:
        return REQUEST_NAME_SEPARATOR.join((self.subject_name, *self.groups))


@dataclass
class KeyMaterial:
    """Freshly generated private key and signing request, both PEM encoded."""

    private_key_pem: bytes
    csr_pem: bytes


class IssuanceStage(str, Enum):
    START = "start"
    CLEANUP_STALE = "cleanup-stale"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    POLLING = "polling"
    ISSUED = "issued"
    ASSEMBLED = "assembled"
    FINAL_CLEANUP = "final-cleanup"
    DONE = "done"


class IssuanceOutcome(str, Enum):
    DONE = "done"
    CANCELLED = "cancelled"


@dataclass
class IssuanceResult:
    """Result from a single issuance run.

    ``profile`` is only set when the run reached DONE. ``cleanup_error`` holds
    the reason the final delete failed; the written credential is still valid.
    """

    outcome: IssuanceOutcome
    request_name: str
    stage: IssuanceStage
    profile: "ConnectionProfile | None" = None
    cleanup_error: str | None = field(default=None)

    @property
    def succeeded(self) -> bool:
        return self.outcome is IssuanceOutcome.DONE
