"""Strict shape validation for virtual node client CSRs."""

import logging
from collections.abc import Iterable

from cryptography import x509

from .config import SUBJECT_COMMON_NAME_PREFIX, SUBJECT_ORGANIZATION
from .csr_utils import san_values, subject_common_name, subject_organizations
from .models import USAGE_CLIENT_AUTH, USAGE_DIGITAL_SIGNATURE, USAGE_KEY_ENCIPHERMENT

logger = logging.getLogger(__name__)

VNODE_CLIENT_REQUIRED_USAGES = frozenset(
    {USAGE_DIGITAL_SIGNATURE, USAGE_KEY_ENCIPHERMENT, USAGE_CLIENT_AUTH}
)

ORGANIZATION_NOT_SYSTEM_VNODES = f"subject organization is not {SUBJECT_ORGANIZATION}"
COMMON_NAME_NOT_SYSTEM_VNODE = f"subject common name does not begin with {SUBJECT_COMMON_NAME_PREFIX}"
DNS_SAN_NOT_ALLOWED = "DNS subjectAltNames are not allowed"
EMAIL_SAN_NOT_ALLOWED = "Email subjectAltNames are not allowed"
IP_SAN_NOT_ALLOWED = "IP subjectAltNames are not allowed"
URI_SAN_NOT_ALLOWED = "URI subjectAltNames are not allowed"
USAGES_MISMATCH = f"usages did not match {sorted(VNODE_CLIENT_REQUIRED_USAGES)}"


def validate_vnode_client_csr(
    req: x509.CertificateSigningRequest, usages: Iterable[str]
) -> tuple[bool, str]:
    """Validate that ``req`` is exactly the virtual node client shape.

    The organization list and the usage set must match exactly; supersets are
    rejected. No subjectAltNames of any kind are permitted.

    Returns:
        ``(True, "")`` when valid, else ``(False, reason)`` for the first
        failing check.
    """
    if subject_organizations(req) != [SUBJECT_ORGANIZATION]:
        return False, ORGANIZATION_NOT_SYSTEM_VNODES

    sans = san_values(req)
    if sans["dns"]:
        return False, DNS_SAN_NOT_ALLOWED
    if sans["email"]:
        return False, EMAIL_SAN_NOT_ALLOWED
    if sans["ip"]:
        return False, IP_SAN_NOT_ALLOWED
    if sans["uri"]:
        return False, URI_SAN_NOT_ALLOWED

    if not subject_common_name(req).startswith(SUBJECT_COMMON_NAME_PREFIX):
        return False, COMMON_NAME_NOT_SYSTEM_VNODE

    if set(usages) != VNODE_CLIENT_REQUIRED_USAGES:
        return False, USAGES_MISMATCH

    return True, ""


def is_vnode_client_csr(req: x509.CertificateSigningRequest, usages: Iterable[str]) -> bool:
    """Boolean form of :func:`validate_vnode_client_csr` that logs the reason."""
    valid, reason = validate_vnode_client_csr(req, usages)
    if not valid:
        logger.warning("validate vnode client csr failed: %s", reason)
        return False
    logger.debug("validate vnode client csr successfully")
    return True
