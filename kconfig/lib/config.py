"""Issuance configuration dataclasses."""

from dataclasses import dataclass

CLIENT_AUTH_SIGNER = "kubernetes.io/kube-apiserver-client"


@dataclass
class CertConfig:
    """Issuance settings with no cluster dependencies."""

    key_size: int = 2048
    signer_name: str = CLIENT_AUTH_SIGNER
    usages: tuple[str, ...] = ("client auth",)
    poll_interval: float = 0.01
    namespace: str = "default"
    approval_reason: str = "KonfigCertApprove"
    approval_message: str = "This CSR was approved by kconfig cert approve."
    creator_annotation: str = "kconfig.local.io"
    expiration_seconds: int | None = None
