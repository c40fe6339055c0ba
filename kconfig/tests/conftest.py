"""Test fixtures for kconfig tests."""

import base64
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import yaml
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from kubernetes import client

from kconfig.lib.authority_client import AuthorityClient
from kconfig.lib.cert_utils import generate_private_key
from kconfig.lib.config import CertConfig
from kconfig.lib.errors import AlreadyExistsError, AuthorityError
from kconfig.lib.kubeconfig import ConnectionProfile


def build_cluster_ca(key: RSAPrivateKey) -> x509.Certificate:
    """Build a self-signed cluster CA certificate."""
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "kubernetes")])
    not_before = datetime.now(UTC)
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_before + timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )


def sign_csr(csr_pem: bytes, ca_cert: x509.Certificate, ca_key: RSAPrivateKey) -> bytes:
    """Sign a client-auth CSR the way the cluster's signing controller would."""
    csr = x509.load_pem_x509_csr(csr_pem)
    not_before = datetime.now(UTC)
    cert = (
        x509.CertificateBuilder()
        .subject_name(csr.subject)
        .issuer_name(ca_cert.subject)
        .public_key(csr.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_before + timedelta(hours=1))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CLIENT_AUTH]), critical=False)
        .sign(ca_key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM)


class FakeAuthority:
    """In-memory signing request API with a synchronous signer.

    An approved request gets its certificate on the ``sign_after_polls``-th
    ``get`` after approval. ``fail_on`` maps an operation name to an
    exception to raise on its next call.
    """

    def __init__(self, ca_cert: x509.Certificate, ca_key: RSAPrivateKey) -> None:
        self.ca_cert = ca_cert
        self.ca_key = ca_key
        self.resources: dict[str, client.V1CertificateSigningRequest] = {}
        self.calls: list[tuple[str, str]] = []
        self.sign_after_polls = 1
        self.fail_on: dict[str, Exception] = {}
        self._polls_since_approval: dict[str, int] = {}

    def _record(self, operation: str, request_name: str) -> None:
        self.calls.append((operation, request_name))
        error = self.fail_on.pop(operation, None)
        if error is not None:
            raise error

    def operations(self) -> list[str]:
        return [operation for operation, _ in self.calls]

    def get(self, request_name: str) -> client.V1CertificateSigningRequest | None:
        self._record("get", request_name)
        resource = self.resources.get(request_name)
        if resource is None:
            return None
        if request_name in self._polls_since_approval:
            self._polls_since_approval[request_name] += 1
            if self._polls_since_approval[request_name] >= self.sign_after_polls:
                csr_pem = base64.b64decode(resource.spec.request)
                certificate = sign_csr(csr_pem, self.ca_cert, self.ca_key)
                resource.status.certificate = base64.b64encode(certificate).decode("ascii")
        return resource

    def create(
        self,
        request_name: str,
        subject_name: str,
        groups: Sequence[str],
        csr_pem: bytes,
        expiration_seconds: int | None = None,
    ) -> client.V1CertificateSigningRequest:
        self._record("create", request_name)
        if request_name in self.resources:
            raise AlreadyExistsError(f"CSR {request_name} already exists", status=409)
        resource = client.V1CertificateSigningRequest(
            metadata=client.V1ObjectMeta(name=request_name),
            spec=client.V1CertificateSigningRequestSpec(
                username=subject_name,
                groups=list(groups),
                usages=["client auth"],
                request=base64.b64encode(csr_pem).decode("ascii"),
                signer_name="kubernetes.io/kube-apiserver-client",
                expiration_seconds=expiration_seconds,
            ),
            status=client.V1CertificateSigningRequestStatus(),
        )
        self.resources[request_name] = resource
        return resource

    def approve(self, resource: client.V1CertificateSigningRequest) -> client.V1CertificateSigningRequest:
        request_name = resource.metadata.name
        self._record("approve", request_name)
        if request_name not in self.resources:
            raise AuthorityError(f"CSR {request_name} not found", status=404)
        self._polls_since_approval[request_name] = 0
        return self.resources[request_name]

    def delete(self, request_name: str) -> bool:
        self._record("delete", request_name)
        self._polls_since_approval.pop(request_name, None)
        return self.resources.pop(request_name, None) is not None

    def issued_certificate(self, resource: client.V1CertificateSigningRequest) -> bytes | None:
        return AuthorityClient.issued_certificate(resource)


@pytest.fixture
def cert_config() -> CertConfig:
    """Return issuance config with small keys and no poll delay."""
    return CertConfig(key_size=2048, poll_interval=0)


@pytest.fixture(scope="session")
def ca_key() -> RSAPrivateKey:
    """Generate RSA private key for the cluster CA."""
    return generate_private_key(key_size=2048)


@pytest.fixture(scope="session")
def ca_cert(ca_key: RSAPrivateKey) -> x509.Certificate:
    """Generate self-signed cluster CA certificate."""
    return build_cluster_ca(ca_key)


@pytest.fixture
def fake_authority(ca_cert: x509.Certificate, ca_key: RSAPrivateKey) -> FakeAuthority:
    """Return an empty in-memory authority backed by the test CA."""
    return FakeAuthority(ca_cert, ca_key)


@pytest.fixture
def base_kubeconfig() -> dict:
    """Return a base kubeconfig document whose current context points at 'prod'."""
    return {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [
            {
                "name": "prod",
                "cluster": {
                    "server": "https://prod.example.com:6443",
                    "certificate-authority-data": "cHJvZC1jYQ==",
                },
            },
            {
                "name": "staging",
                "cluster": {"server": "https://staging.example.com:6443"},
            },
        ],
        "users": [
            {"name": "admin", "user": {"token": "admin-token"}},
        ],
        "contexts": [
            {"name": "admin@prod", "context": {"cluster": "prod", "user": "admin"}},
            {"name": "admin@staging", "context": {"cluster": "staging", "user": "admin"}},
        ],
        "current-context": "admin@prod",
    }


@pytest.fixture
def base_profile(base_kubeconfig: dict) -> ConnectionProfile:
    """Return the base kubeconfig parsed into a ConnectionProfile."""
    return ConnectionProfile.from_dict(base_kubeconfig)


@pytest.fixture
def kubeconfig_file(tmp_path: Path, base_kubeconfig: dict) -> Path:
    """Write the base kubeconfig to disk and return its path."""
    path = tmp_path / "config"
    path.write_text(yaml.safe_dump(base_kubeconfig))
    return path
