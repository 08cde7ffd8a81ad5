"""CSR parsing, subject inspection and approval-condition helpers."""

import re

from cryptography import x509
from cryptography.x509.oid import NameOID

from .errors import ParseError
from .models import (
    CERTIFICATE_APPROVED,
    CERTIFICATE_DENIED,
    CONDITION_TRUE,
    CertificateSigningRequest,
    CertificateSigningRequestStatus,
)

CSR_PEM_TYPE = "CERTIFICATE REQUEST"

_PEM_BEGIN = re.compile(rb"-----BEGIN ([A-Z0-9 ]+)-----")


def parse_csr(pem_bytes: bytes) -> x509.CertificateSigningRequest:
    """Extract the first PEM block from ``pem_bytes`` and decode it as a CSR.

    Raises:
        ParseError: If there is no PEM block, the first block is not a
            ``CERTIFICATE REQUEST``, or its DER payload or extensions do not
            decode.
    """
    match = _PEM_BEGIN.search(pem_bytes)
    if match is None or match.group(1).decode("ascii") != CSR_PEM_TYPE:
        raise ParseError(f"PEM block type must be {CSR_PEM_TYPE}")
    try:
        req = x509.load_pem_x509_csr(pem_bytes[match.start() :])
        # extensions are decoded lazily on first access
        req.extensions
    except (ValueError, x509.DuplicateExtension) as e:
        raise ParseError(f"unable to decode certificate request: {e}") from e
    return req


def get_cert_approval_condition(
    status: CertificateSigningRequestStatus,
) -> tuple[bool, bool]:
    """Return ``(approved, denied)`` for the conditions in ``status``."""
    approved = False
    denied = False
    for condition in status.conditions:
        if condition.type == CERTIFICATE_APPROVED:
            approved = True
        if condition.type == CERTIFICATE_DENIED:
            denied = True
    return approved, denied


def is_certificate_request_approved(csr: CertificateSigningRequest) -> bool:
    """True if the CSR has an Approved condition and no Denied condition."""
    approved, denied = get_cert_approval_condition(csr.status)
    return approved and not denied


def has_true_condition(csr: CertificateSigningRequest, condition_type: str) -> bool:
    """True if a condition of ``condition_type`` has status True or no status."""
    return any(
        c.type == condition_type and (not c.status or c.status == CONDITION_TRUE)
        for c in csr.status.conditions
    )


def is_terminal(csr: CertificateSigningRequest) -> bool:
    """True once a CSR has been issued, approved or denied."""
    if csr.status.certificate:
        return True
    approved, denied = get_cert_approval_condition(csr.status)
    return approved or denied


def _string_attributes(name: x509.Name, oid: x509.ObjectIdentifier) -> list[str]:
    return [str(attr.value) for attr in name.get_attributes_for_oid(oid)]


def subject_common_name(req: x509.CertificateSigningRequest) -> str:
    """Return the subject CN. With several CN attributes the last one wins."""
    names = _string_attributes(req.subject, NameOID.COMMON_NAME)
    return names[-1] if names else ""


def subject_organizations(req: x509.CertificateSigningRequest) -> list[str]:
    """Return the subject O attributes in order."""
    return _string_attributes(req.subject, NameOID.ORGANIZATION_NAME)


def san_values(req: x509.CertificateSigningRequest) -> dict[str, list[str]]:
    """Return the requested subjectAltNames grouped by kind.

    Keys are ``dns``, ``email``, ``ip`` and ``uri``; every key is present.
    """
    values: dict[str, list[str]] = {"dns": [], "email": [], "ip": [], "uri": []}
    try:
        san = req.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return values

    values["dns"] = list(san.get_values_for_type(x509.DNSName))
    values["email"] = list(san.get_values_for_type(x509.RFC822Name))
    values["ip"] = [str(ip) for ip in san.get_values_for_type(x509.IPAddress)]
    values["uri"] = list(san.get_values_for_type(x509.UniformResourceIdentifier))
    return values
