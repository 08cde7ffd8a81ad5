"""SubjectAccessReview based auto-approval of virtual node client CSRs."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from cryptography import x509

from .config import VNODE_CLIENT_SIGNER_NAME, ControllerConfig
from .controller import CertificateController
from .csr_utils import is_terminal, parse_csr, subject_common_name
from .csr_validator import is_vnode_client_csr
from .errors import IgnorableError, TransportError
from .informer import SharedInformer
from .models import (
    CERTIFICATE_APPROVED,
    CONDITION_TRUE,
    CertificateSigningRequest,
    CertificateSigningRequestCondition,
    ResourceAttributes,
    SubjectAccessReviewSpec,
)
from .rate_limiter import default_controller_rate_limiter
from .workqueue import RateLimitingQueue

logger = logging.getLogger(__name__)

APPROVED_REASON = "AutoApproved"

Recognize = Callable[[CertificateSigningRequest, x509.CertificateSigningRequest], bool]


class ApprovalClient(Protocol):
    """Remote calls the approver needs."""

    def create_subject_access_review(self, spec: SubjectAccessReviewSpec) -> bool: ...

    def update_approval(self, csr: CertificateSigningRequest) -> CertificateSigningRequest: ...


@dataclass(frozen=True)
class CSRRecognizer:
    """One approvable request shape and the permission it requires."""

    recognize: Recognize
    permission: ResourceAttributes
    success_message: str


def is_node_client_cert(
    csr: CertificateSigningRequest, x509cr: x509.CertificateSigningRequest
) -> bool:
    """Signed by the vnode client signer and exactly the vnode client shape."""
    if csr.spec.signer_name != VNODE_CLIENT_SIGNER_NAME:
        return False
    return is_vnode_client_csr(x509cr, set(csr.spec.usages))


def is_self_node_client_cert(
    csr: CertificateSigningRequest, x509cr: x509.CertificateSigningRequest
) -> bool:
    """A node client cert requested by the identity named in its subject."""
    if csr.spec.username != subject_common_name(x509cr):
        return False
    return is_node_client_cert(csr, x509cr)


def recognizers() -> list[CSRRecognizer]:
    """Approvable shapes, most specific first."""
    return [
        CSRRecognizer(
            recognize=is_self_node_client_cert,
            permission=ResourceAttributes(
                group="certificates.k8s.io",
                resource="certificatesigningrequests",
                verb="create",
                subresource="selfnodeclient",
            ),
            success_message="Auto approving self vnode client certificate after SubjectAccessReview.",
        ),
        CSRRecognizer(
            recognize=is_node_client_cert,
            permission=ResourceAttributes(
                group="certificates.k8s.io",
                resource="certificatesigningrequests",
                verb="create",
                subresource="nodeclient",
            ),
            success_message="Auto approving vnode client certificate after SubjectAccessReview.",
        ),
    ]


def append_approval_condition(csr: CertificateSigningRequest, message: str) -> None:
    """Append an Approved condition to ``csr``'s status."""
    csr.status.conditions.append(
        CertificateSigningRequestCondition(
            type=CERTIFICATE_APPROVED,
            status=CONDITION_TRUE,
            reason=APPROVED_REASON,
            message=message,
        )
    )


class SarApprover:
    """Approves recognized CSRs whose requester passes a SubjectAccessReview."""

    def __init__(
        self,
        client: ApprovalClient,
        csr_recognizers: list[CSRRecognizer] | None = None,
    ) -> None:
        self.client = client
        self.recognizers = csr_recognizers if csr_recognizers is not None else recognizers()

    def handle(self, csr: CertificateSigningRequest) -> None:
        """Approve ``csr`` if it matches a recognizer its requester is allowed to use.

        ``csr`` must be a private working copy; its status is mutated on
        approval. Every matching recognizer is tried in order and the first
        authorized one wins. A request nobody recognizes is left alone.

        Raises:
            ParseError: If the request bytes cannot be parsed
            TransportError: If an access review or the approval update fails
            IgnorableError: If the request was recognized but never authorized
        """
        if is_terminal(csr):
            return

        x509cr = parse_csr(csr.spec.request)

        tried: list[str] = []
        for recognizer in self.recognizers:
            if not recognizer.recognize(csr, x509cr):
                continue

            tried.append(recognizer.permission.subresource)

            if not self.authorize(csr, recognizer.permission):
                continue

            append_approval_condition(csr, recognizer.success_message)
            try:
                self.client.update_approval(csr)
            except TransportError as e:
                raise TransportError(f"error updating approval for csr {csr.name!r}: {e}") from e
            logger.info("Approved csr %s: %s", csr.name, recognizer.success_message)
            return

        if tried:
            raise IgnorableError(
                f"recognized csr {csr.name!r} as {tried} but subject access review was not approved"
            )

    def authorize(self, csr: CertificateSigningRequest, permission: ResourceAttributes) -> bool:
        """Ask the API server whether the requester holds ``permission``."""
        spec = SubjectAccessReviewSpec(
            user=csr.spec.username,
            uid=csr.spec.uid,
            groups=list(csr.spec.groups),
            extra={k: list(v) for k, v in csr.spec.extra.items()},
            resource_attributes=permission,
        )
        return self.client.create_subject_access_review(spec)


def new_csr_approving_controller(
    client: ApprovalClient,
    informer: SharedInformer[CertificateSigningRequest],
    config: ControllerConfig | None = None,
) -> CertificateController[CertificateSigningRequest]:
    """Wire a :class:`SarApprover` into a controller fed by ``informer``."""
    config = config or ControllerConfig()
    approver = SarApprover(client)
    controller: CertificateController[CertificateSigningRequest] = CertificateController(
        name=config.name,
        lister=informer.lister,
        has_synced=informer.has_synced,
        handler=approver.handle,
        queue=RateLimitingQueue(default_controller_rate_limiter(config), name="certificate"),
        is_terminal=is_terminal,
        copy_func=CertificateSigningRequest.deep_copy,
        config=config,
    )
    informer.add_event_handler(controller)
    return controller
