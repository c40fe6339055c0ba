"""Exception types for certificate issuance."""


class KconfigError(Exception):
    """Base error for the issuance workflow.

    The orchestrator fills in ``request_name`` and ``stage`` before the error
    leaves ``CertificateIssuer.issue`` so callers can tell where a run stopped.
    """

    def __init__(self, message: str, request_name: str | None = None, stage: str | None = None):
        super().__init__(message)
        self.message = message
        self.request_name = request_name
        self.stage = stage

    def __str__(self) -> str:
        context = []
        if self.stage:
            context.append(f"stage={self.stage}")
        if self.request_name:
            context.append(f"csr={self.request_name}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class KeyGenerationError(KconfigError):
    """Private key could not be generated."""


class EncodingError(KconfigError):
    """Key or signing request could not be built or serialized."""


class AuthorityError(KconfigError):
    """Authority service call failed."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        request_name: str | None = None,
        stage: str | None = None,
    ):
        super().__init__(message, request_name=request_name, stage=stage)
        self.status = status


class AuthorityRejectedError(AuthorityError):
    """Authority refused the request as malformed (400/422)."""


class AlreadyExistsError(AuthorityError):
    """A signing request with the same name is already present."""


class ConflictError(AuthorityError):
    """Signing request was modified concurrently."""


class MissingBaseContextError(KconfigError):
    """Base kubeconfig has no usable current context or cluster."""
