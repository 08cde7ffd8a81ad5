"""CertificateSigningRequest and SubjectAccessReview models."""

import copy
from dataclasses import dataclass, field
from datetime import datetime

CERTIFICATE_APPROVED = "Approved"
CERTIFICATE_DENIED = "Denied"
CERTIFICATE_FAILED = "Failed"

CONDITION_TRUE = "True"
CONDITION_FALSE = "False"
CONDITION_UNKNOWN = "Unknown"

USAGE_DIGITAL_SIGNATURE = "digital signature"
USAGE_KEY_ENCIPHERMENT = "key encipherment"
USAGE_CLIENT_AUTH = "client auth"
USAGE_SERVER_AUTH = "server auth"


@dataclass
class CertificateSigningRequestCondition:
    """One entry in a CSR's append-only condition list."""

    type: str
    status: str = CONDITION_TRUE
    reason: str = ""
    message: str = ""
    last_update_time: datetime | None = None


@dataclass
class CertificateSigningRequestSpec:
    """Requester-supplied CSR fields, immutable after creation.

    ``request`` holds the PEM encoded PKCS#10 request. ``extra`` mirrors the
    authenticator's open-ended string-list attribute bag.
    """

    request: bytes
    signer_name: str
    usages: list[str] = field(default_factory=list)
    username: str = ""
    uid: str = ""
    groups: list[str] = field(default_factory=list)
    extra: dict[str, list[str]] = field(default_factory=dict)
    expiration_seconds: int | None = None


@dataclass
class CertificateSigningRequestStatus:
    """Mutable CSR status. ``certificate`` is only ever written by a signer."""

    conditions: list[CertificateSigningRequestCondition] = field(default_factory=list)
    certificate: bytes = b""


@dataclass
class CertificateSigningRequest:
    """Cluster-scoped CSR object; ``name`` is its queue key."""

    name: str
    spec: CertificateSigningRequestSpec
    status: CertificateSigningRequestStatus = field(
        default_factory=CertificateSigningRequestStatus
    )
    uid: str = ""
    resource_version: str = ""

    def deep_copy(self) -> "CertificateSigningRequest":
        """Return a working copy that shares no mutable state with this object."""
        return copy.deepcopy(self)


@dataclass(frozen=True)
class ResourceAttributes:
    """Resource/verb tuple checked by a SubjectAccessReview."""

    group: str
    resource: str
    verb: str
    subresource: str = ""
    namespace: str = ""
    name: str = ""


@dataclass
class SubjectAccessReviewSpec:
    """Identity and action submitted for an access review."""

    user: str
    resource_attributes: ResourceAttributes
    uid: str = ""
    groups: list[str] = field(default_factory=list)
    extra: dict[str, list[str]] = field(default_factory=dict)
