"""Client certificate issuance through the cluster signing request API."""

import logging
from collections.abc import Callable, Sequence
from typing import Protocol

from kubernetes.client import V1CertificateSigningRequest

from kconfig.lib.cancellation import CancellationToken
from kconfig.lib.cert_utils import certificate_matches_key, create_key_material
from kconfig.lib.config import CertConfig
from kconfig.lib.errors import AuthorityError, KconfigError
from kconfig.lib.kubeconfig import ConnectionProfile, assemble_profile
from kconfig.lib.models import (
    IdentityRequest,
    IssuanceOutcome,
    IssuanceResult,
    IssuanceStage,
    KeyMaterial,
)

logger = logging.getLogger(__name__)

KeyFactory = Callable[..., KeyMaterial]


class Authority(Protocol):
    """Signing request operations the issuer depends on (see AuthorityClient)."""

    def get(self, request_name: str) -> V1CertificateSigningRequest | None: ...

    def create(
        self,
        request_name: str,
        subject_name: str,
        groups: Sequence[str],
        csr_pem: bytes,
        expiration_seconds: int | None = None,
    ) -> V1CertificateSigningRequest: ...

    def approve(self, resource: V1CertificateSigningRequest) -> V1CertificateSigningRequest: ...

    def delete(self, request_name: str) -> bool: ...

    def issued_certificate(self, resource: V1CertificateSigningRequest) -> bytes | None: ...


class Sink(Protocol):
    def write(self, content: str) -> None: ...


class CertificateIssuer:
    """Issues a client certificate and turns it into a standalone kubeconfig.

    One run walks cleanup of any stale request, key generation and
    submission, self-approval, polling for the signed certificate, kubeconfig
    assembly, output, and deletion of the request. Nothing is retried; any
    failure stops the run and is raised annotated with the request name and
    stage.
    """

    def __init__(
        self,
        authority: Authority,
        config: CertConfig | None = None,
        key_factory: KeyFactory = create_key_material,
    ) -> None:
        """Initialize issuer.

        Args:
            authority: Signing request client
            config: Issuance settings
            key_factory: Callable producing KeyMaterial for (subject, groups)
        """
        self.authority = authority
        self.config = config or CertConfig()
        self.key_factory = key_factory

    def issue(
        self,
        identity: IdentityRequest,
        base_profile: ConnectionProfile,
        sink: Sink,
        cancel_token: CancellationToken | None = None,
    ) -> IssuanceResult:
        """Run the full issuance workflow for one identity.

        Args:
            identity: Subject name and groups to certify
            base_profile: Kubeconfig whose current cluster is copied to the output
            sink: Destination for the generated kubeconfig
            cancel_token: Cancels the polling step; the request is left in place

        Returns:
            IssuanceResult with DONE or CANCELLED outcome

        Raises:
            KconfigError: Any fatal failure, with request_name and stage set
        """
        request_name = identity.request_name
        token = cancel_token or CancellationToken()
        stage = IssuanceStage.START

        try:
            stage = self._enter(IssuanceStage.CLEANUP_STALE, request_name)
            self._cleanup_stale(request_name)

            stage = self._enter(IssuanceStage.SUBMITTED, request_name)
            material = self.key_factory(
                identity.subject_name, identity.groups, key_size=self.config.key_size
            )
            resource = self.authority.create(
                request_name,
                identity.subject_name,
                identity.groups,
                material.csr_pem,
                expiration_seconds=self.config.expiration_seconds,
            )

            stage = self._enter(IssuanceStage.APPROVED, request_name)
            self.authority.approve(resource)

            stage = self._enter(IssuanceStage.POLLING, request_name)
            certificate_pem = self.wait_for_certificate(request_name, token)
            if certificate_pem is None:
                logger.warning("Cancelled while waiting for CSR %s, leaving it in place", request_name)
                return IssuanceResult(
                    outcome=IssuanceOutcome.CANCELLED,
                    request_name=request_name,
                    stage=IssuanceStage.POLLING,
                )

            stage = self._enter(IssuanceStage.ISSUED, request_name)
            if not certificate_matches_key(certificate_pem, material.private_key_pem):
                logger.warning("Certificate issued for CSR %s does not match the generated key", request_name)

            stage = self._enter(IssuanceStage.ASSEMBLED, request_name)
            profile = assemble_profile(
                base_profile,
                identity.subject_name,
                certificate_pem,
                material.private_key_pem,
                namespace=self.config.namespace,
            )

            stage = self._enter(IssuanceStage.FINAL_CLEANUP, request_name)
            sink.write(profile.to_yaml())
        except KconfigError as e:
            if e.request_name is None:
                e.request_name = request_name
            if e.stage is None:
                e.stage = stage.value
            logger.error("Issuance failed: %s", e)
            raise
        except Exception:
            logger.error("Issuance failed at stage %s for CSR %s", stage.value, request_name)
            raise

        cleanup_error = self._final_cleanup(request_name)
        self._enter(IssuanceStage.DONE, request_name)
        return IssuanceResult(
            outcome=IssuanceOutcome.DONE,
            request_name=request_name,
            stage=IssuanceStage.DONE,
            profile=profile,
            cleanup_error=cleanup_error,
        )

    def wait_for_certificate(self, request_name: str, cancel_token: CancellationToken) -> bytes | None:
        """Poll the signing request until its certificate is issued.

        Returns as soon as a fetch shows a certificate. The approval condition
        is not inspected. No backoff and no attempt limit; bound the wait
        through ``cancel_token``.

        Returns:
            PEM certificate, or None if cancelled

        Raises:
            AuthorityError: If a fetch fails or the request disappears
        """
        polls = 0
        while not cancel_token.cancelled:
            resource = self.authority.get(request_name)
            polls += 1
            if resource is None:
                raise AuthorityError(
                    f"CSR {request_name} disappeared before a certificate was issued",
                    status=404,
                    request_name=request_name,
                )

            certificate = self.authority.issued_certificate(resource)
            if certificate:
                logger.info("CSR %s issued after %d poll(s)", request_name, polls)
                return certificate

            if cancel_token.wait(self.config.poll_interval):
                break
        return None

    def _cleanup_stale(self, request_name: str) -> None:
        if self.authority.get(request_name) is None:
            return
        logger.info("Deleting stale CSR %s from a previous run", request_name)
        self.authority.delete(request_name)

    def _final_cleanup(self, request_name: str) -> str | None:
        """Delete the request after output is written; failures are only reported."""
        try:
            if not self.authority.delete(request_name):
                logger.info("CSR %s already removed", request_name)
        except Exception as e:
            logger.warning("Failed to delete CSR %s after issuance: %s", request_name, e)
            return str(e) or type(e).__name__
        return None

    @staticmethod
    def _enter(stage: IssuanceStage, request_name: str) -> IssuanceStage:
        logger.info(
            "CSR %s: %s",
            request_name,
            stage.value,
            extra={"csr": request_name, "stage": stage.value},
        )
        return stage
