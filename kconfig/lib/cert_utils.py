"""Key generation, signing request construction, and PEM serialization."""

from collections.abc import Sequence

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.oid import NameOID

from kconfig.lib.errors import EncodingError, KeyGenerationError
from kconfig.lib.models import KeyMaterial


def generate_private_key(key_size: int = 2048) -> RSAPrivateKey:
    """Generate RSA private key with specified size."""
    return rsa.generate_private_key(
        public_exponent=65537,
        key_size=key_size,
    )


def serialize_private_key(key: RSAPrivateKey) -> bytes:
    """Serialize private key to PEM format (PKCS8, no encryption)."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def deserialize_private_key(pem_data: bytes) -> RSAPrivateKey:
    """Deserialize private key from PEM bytes."""
    key = serialization.load_pem_private_key(pem_data, password=None)
    if not isinstance(key, RSAPrivateKey):
        raise ValueError("expected RSA private key")
    return key


def deserialize_certificate(pem_data: bytes) -> x509.Certificate:
    """Deserialize certificate from PEM bytes."""
    return x509.load_pem_x509_certificate(pem_data)


def build_subject_name(subject_name: str, groups: Sequence[str]) -> x509.Name:
    """Build the subject DN the API server maps to a user and its groups.

    Kubernetes reads the user from CN and one group from each O attribute.
    """
    attributes = [x509.NameAttribute(NameOID.COMMON_NAME, subject_name)]
    attributes.extend(x509.NameAttribute(NameOID.ORGANIZATION_NAME, group) for group in groups)
    return x509.Name(attributes)


def build_csr(
    key: RSAPrivateKey,
    subject_name: str,
    groups: Sequence[str],
    extensions: Sequence[tuple[x509.ExtensionType, bool]] | None = None,
) -> x509.CertificateSigningRequest:
    """Build and sign a CSR for the given identity.

    Args:
        key: Private key to sign the request with
        subject_name: User name, encoded as CN
        groups: Group memberships, encoded as O attributes in order
        extensions: Optional (extension, critical) pairs; none by default

    Returns:
        Signed certificate signing request
    """
    builder = x509.CertificateSigningRequestBuilder().subject_name(
        build_subject_name(subject_name, groups)
    )
    for extension, critical in extensions or ():
        builder = builder.add_extension(extension, critical=critical)
    return builder.sign(key, hashes.SHA256())


def serialize_csr(csr: x509.CertificateSigningRequest) -> bytes:
    """Serialize CSR to PEM format."""
    return csr.public_bytes(serialization.Encoding.PEM)


def certificate_matches_key(certificate_pem: bytes, private_key_pem: bytes) -> bool:
    """Check that an issued certificate carries the public half of a private key."""
    try:
        cert = deserialize_certificate(certificate_pem)
        key = deserialize_private_key(private_key_pem)
    except ValueError:
        return False
    return cert.public_key().public_numbers() == key.public_key().public_numbers()  # type: ignore[union-attr]


def create_key_material(
    subject_name: str,
    groups: Sequence[str],
    key_size: int = 2048,
    extensions: Sequence[tuple[x509.ExtensionType, bool]] | None = None,
) -> KeyMaterial:
    """Generate a fresh private key and a PEM CSR for the identity.

    Args:
        subject_name: User name for the certificate subject
        groups: Group memberships for the certificate subject
        key_size: RSA key size in bits
        extensions: Optional (extension, critical) pairs added to the CSR

    Returns:
        KeyMaterial with PKCS8 private key PEM and CSR PEM

    Raises:
        KeyGenerationError: If the key cannot be generated
        EncodingError: If the CSR cannot be built or serialized
    """
    try:
        key = generate_private_key(key_size)
    except (ValueError, TypeError) as e:
        raise KeyGenerationError(f"failed to generate {key_size}-bit RSA key: {e}") from e

    try:
        csr = build_csr(key, subject_name, groups, extensions)
        return KeyMaterial(
            private_key_pem=serialize_private_key(key),
            csr_pem=serialize_csr(csr),
        )
    except (ValueError, TypeError) as e:
        raise EncodingError(f"failed to encode signing request for {subject_name}: {e}") from e
