"""Kubernetes client for CertificateSigningRequest operations."""

import base64
import logging
from collections.abc import Sequence
from datetime import UTC, datetime

from kubernetes import client
from kubernetes.client import ApiClient, V1CertificateSigningRequest
from kubernetes.client.rest import ApiException

from kconfig.lib.config import CertConfig
from kconfig.lib.errors import (
    AlreadyExistsError,
    AuthorityError,
    AuthorityRejectedError,
    ConflictError,
)

logger = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409
REJECTED_STATUSES = frozenset({400, 422})


def _authority_error(e: ApiException, request_name: str, action: str) -> AuthorityError:
    """Map an API failure that is not covered by a more specific branch."""
    message = f"failed to {action} CSR {request_name}: {e.status} {e.reason}"
    if e.status in REJECTED_STATUSES:
        return AuthorityRejectedError(message, status=e.status, request_name=request_name)
    return AuthorityError(message, status=e.status, request_name=request_name)


class AuthorityClient:
    """Client for the certificates.k8s.io/v1 signing request resource.

    Remote not-found is returned as a value (None / False) rather than raised,
    so the caller can branch on it.
    """

    def __init__(self, api_client: ApiClient | None = None, config: CertConfig | None = None) -> None:
        """Initialize the certificates API client.

        Args:
            api_client: Configured Kubernetes API client; the default client
                configuration is used when omitted
            config: Issuance settings for signer, usages and approval text
        """
        self.config = config or CertConfig()
        self.api = client.CertificatesV1Api(api_client)

    def get(self, request_name: str) -> V1CertificateSigningRequest | None:
        """Fetch a signing request by name.

        Returns:
            The signing request, or None if it does not exist

        Raises:
            AuthorityError: For any failure other than not-found
        """
        try:
            return self.api.read_certificate_signing_request(name=request_name)
        except ApiException as e:
            if e.status == HTTP_NOT_FOUND:
                return None
            raise _authority_error(e, request_name, "read") from e

    def create(
        self,
        request_name: str,
        subject_name: str,
        groups: Sequence[str],
        csr_pem: bytes,
        expiration_seconds: int | None = None,
    ) -> V1CertificateSigningRequest:
        """Submit a client-auth signing request.

        Args:
            request_name: Resource name
            subject_name: Requesting user name
            groups: Requesting user groups
            csr_pem: PEM-encoded PKCS#10 request
            expiration_seconds: Requested certificate lifetime, signer default if None

        Returns:
            The created signing request

        Raises:
            AlreadyExistsError: If a request with this name already exists
            AuthorityRejectedError: If the request is malformed
        """
        body = client.V1CertificateSigningRequest(
            api_version="certificates.k8s.io/v1",
            kind="CertificateSigningRequest",
            metadata=client.V1ObjectMeta(
                name=request_name,
                annotations={"creator": self.config.creator_annotation},
            ),
            spec=client.V1CertificateSigningRequestSpec(
                username=subject_name,
                groups=list(groups),
                usages=list(self.config.usages),
                request=base64.b64encode(csr_pem).decode("ascii"),
                signer_name=self.config.signer_name,
                expiration_seconds=expiration_seconds,
            ),
        )

        try:
            return self.api.create_certificate_signing_request(body=body)
        except ApiException as e:
            if e.status == HTTP_CONFLICT:
                raise AlreadyExistsError(
                    f"CSR {request_name} already exists",
                    status=e.status,
                    request_name=request_name,
                ) from e
            raise _authority_error(e, request_name, "create") from e

    def approve(self, resource: V1CertificateSigningRequest) -> V1CertificateSigningRequest:
        """Record an Approved condition on a signing request.

        Caller must be authorized to approve requests for the configured
        signer; the outcome is not verified here.

        Raises:
            ConflictError: If the resource changed since it was read
        """
        request_name = resource.metadata.name
        condition = client.V1CertificateSigningRequestCondition(
            type="Approved",
            status="True",
            reason=self.config.approval_reason,
            message=self.config.approval_message,
            last_update_time=datetime.now(UTC),
        )
        if resource.status is None:
            resource.status = client.V1CertificateSigningRequestStatus()
        resource.status.conditions = [condition]

        try:
            return self.api.replace_certificate_signing_request_approval(
                name=request_name, body=resource
            )
        except ApiException as e:
            if e.status == HTTP_CONFLICT:
                raise ConflictError(
                    f"CSR {request_name} was modified concurrently",
                    status=e.status,
                    request_name=request_name,
                ) from e
            raise _authority_error(e, request_name, "approve") from e

    def delete(self, request_name: str) -> bool:
        """Delete a signing request immediately (zero grace period).

        Returns:
            True if deleted, False if it did not exist
        """
        try:
            self.api.delete_certificate_signing_request(
                name=request_name, grace_period_seconds=0
            )
            return True
        except ApiException as e:
            if e.status == HTTP_NOT_FOUND:
                logger.debug("CSR %s already absent", request_name)
                return False
            raise _authority_error(e, request_name, "delete") from e

    @staticmethod
    def issued_certificate(resource: V1CertificateSigningRequest) -> bytes | None:
        """Return the issued PEM certificate, or None if not yet signed."""
        status = resource.status
        if status is None or not status.certificate:
            return None
        return base64.b64decode(status.certificate)
