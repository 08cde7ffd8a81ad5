"""Test fixtures for vnode_approver tests."""

import ipaddress
from unittest.mock import MagicMock

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ec import EllipticCurvePrivateKey
from cryptography.x509.oid import NameOID

from vnode_approver.lib.config import SUBJECT_ORGANIZATION, VNODE_CLIENT_SIGNER_NAME
from vnode_approver.lib.models import (
    USAGE_CLIENT_AUTH,
    USAGE_DIGITAL_SIGNATURE,
    USAGE_KEY_ENCIPHERMENT,
    CertificateSigningRequest,
    CertificateSigningRequestSpec,
)

VNODE_USAGES = [USAGE_DIGITAL_SIGNATURE, USAGE_KEY_ENCIPHERMENT, USAGE_CLIENT_AUTH]
VNODE_CN = "system:vnode:worker-1"


@pytest.fixture(scope="session")
def csr_key() -> EllipticCurvePrivateKey:
    """Generate one EC key shared by all test CSRs."""
    return ec.generate_private_key(ec.SECP256R1())


def build_x509_csr(
    key: EllipticCurvePrivateKey,
    common_name: str = VNODE_CN,
    organizations: list[str] | None = None,
    dns_names: list[str] | None = None,
    emails: list[str] | None = None,
    ips: list[str] | None = None,
    uris: list[str] | None = None,
) -> x509.CertificateSigningRequest:
    """Build a signed PKCS#10 request with the given subject and SANs."""
    if organizations is None:
        organizations = [SUBJECT_ORGANIZATION]
    attributes = [x509.NameAttribute(NameOID.ORGANIZATION_NAME, org) for org in organizations]
    attributes.append(x509.NameAttribute(NameOID.COMMON_NAME, common_name))

    builder = x509.CertificateSigningRequestBuilder().subject_name(x509.Name(attributes))

    general_names: list[x509.GeneralName] = []
    general_names += [x509.DNSName(name) for name in dns_names or []]
    general_names += [x509.RFC822Name(email) for email in emails or []]
    general_names += [x509.IPAddress(ipaddress.ip_address(ip)) for ip in ips or []]
    general_names += [x509.UniformResourceIdentifier(uri) for uri in uris or []]
    if general_names:
        builder = builder.add_extension(x509.SubjectAlternativeName(general_names), critical=False)

    return builder.sign(key, hashes.SHA256())


def build_csr_pem(key: EllipticCurvePrivateKey, **kwargs) -> bytes:
    """PEM encode a request built by :func:`build_x509_csr`."""
    return build_x509_csr(key, **kwargs).public_bytes(serialization.Encoding.PEM)


def make_csr(
    request: bytes,
    name: str = "csr-worker-1",
    username: str = VNODE_CN,
    signer_name: str = VNODE_CLIENT_SIGNER_NAME,
    usages: list[str] | None = None,
) -> CertificateSigningRequest:
    """Build a CSR object around ``request``."""
    return CertificateSigningRequest(
        name=name,
        uid="0f5a1c52-6d1c-4b8e-a0a4-0c2d6b5f3f11",
        resource_version="100",
        spec=CertificateSigningRequestSpec(
            request=request,
            signer_name=signer_name,
            usages=list(VNODE_USAGES if usages is None else usages),
            username=username,
            uid="user-uid-1",
            groups=["system:vnodes", "system:authenticated"],
            extra={"scopes": ["vnode"]},
        ),
    )


@pytest.fixture
def vnode_csr_pem(csr_key: EllipticCurvePrivateKey) -> bytes:
    """PEM request with the exact virtual node client shape."""
    return build_csr_pem(csr_key)


@pytest.fixture
def vnode_csr(vnode_csr_pem: bytes) -> CertificateSigningRequest:
    """Virtual node CSR whose username matches its subject CN."""
    return make_csr(vnode_csr_pem)


@pytest.fixture
def mock_kube_client() -> MagicMock:
    """Return mocked approval client that allows every access review."""
    client = MagicMock()
    client.create_subject_access_review.return_value = True
    return client


@pytest.fixture
def pem_factory(csr_key: EllipticCurvePrivateKey):
    """Return a builder for PEM requests signed with the shared key."""

    def _build(**kwargs) -> bytes:
        return build_csr_pem(csr_key, **kwargs)

    return _build


@pytest.fixture
def x509_factory(csr_key: EllipticCurvePrivateKey):
    """Return a builder for parsed requests signed with the shared key."""

    def _build(**kwargs) -> x509.CertificateSigningRequest:
        return build_x509_csr(csr_key, **kwargs)

    return _build


@pytest.fixture
def csr_factory():
    """Return the CSR object builder."""
    return make_csr
