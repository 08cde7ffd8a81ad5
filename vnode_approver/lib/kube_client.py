"""Kubernetes API client for access reviews, CSR approval and CSR list/watch."""

import base64
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import urllib3
from kubernetes import client, config, watch
from kubernetes.client.exceptions import ApiException

from .config import DEFAULT_KUBECONFIG
from .errors import TransportError
from .models import (
    CertificateSigningRequest,
    CertificateSigningRequestCondition,
    CertificateSigningRequestSpec,
    CertificateSigningRequestStatus,
    SubjectAccessReviewSpec,
)

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (ApiException, urllib3.exceptions.HTTPError)


def load_api_client(kubeconfig: Path = DEFAULT_KUBECONFIG) -> client.ApiClient:
    """Build an API client from ``kubeconfig``, or in-cluster config if it is absent.

    Raises:
        kubernetes.config.ConfigException: If neither configuration loads.
    """
    if kubeconfig.exists():
        logger.info("Loading kubeconfig from %s", kubeconfig)
        return config.new_client_from_config(config_file=str(kubeconfig))

    logger.info("Kubeconfig %s not found, loading in-cluster configuration", kubeconfig)
    config.load_incluster_config()
    return client.ApiClient()


def _b64decode(value: str | None) -> bytes:
    return base64.b64decode(value) if value else b""


def _b64encode(value: bytes) -> str | None:
    return base64.b64encode(value).decode("ascii") if value else None


def csr_from_kube(obj: client.V1CertificateSigningRequest) -> CertificateSigningRequest:
    """Convert an API CSR into the approver's model.

    The API client leaves ``request`` and ``certificate`` base64 encoded.
    """
    spec = obj.spec
    status = obj.status
    conditions = [
        CertificateSigningRequestCondition(
            type=c.type,
            status=c.status or "",
            reason=c.reason or "",
            message=c.message or "",
            last_update_time=c.last_update_time,
        )
        for c in ((status.conditions if status else None) or [])
    ]
    return CertificateSigningRequest(
        name=obj.metadata.name,
        uid=obj.metadata.uid or "",
        resource_version=obj.metadata.resource_version or "",
        spec=CertificateSigningRequestSpec(
            request=_b64decode(spec.request),
            signer_name=spec.signer_name or "",
            usages=list(spec.usages or []),
            username=spec.username or "",
            uid=spec.uid or "",
            groups=list(spec.groups or []),
            extra={k: list(v) for k, v in (spec.extra or {}).items()},
            expiration_seconds=spec.expiration_seconds,
        ),
        status=CertificateSigningRequestStatus(
            conditions=conditions,
            certificate=_b64decode(status.certificate if status else None),
        ),
    )


def csr_to_kube(csr: CertificateSigningRequest) -> client.V1CertificateSigningRequest:
    """Convert the approver's model back into an API CSR for an update call."""
    return client.V1CertificateSigningRequest(
        api_version="certificates.k8s.io/v1",
        kind="CertificateSigningRequest",
        metadata=client.V1ObjectMeta(
            name=csr.name,
            uid=csr.uid or None,
            resource_version=csr.resource_version or None,
        ),
        spec=client.V1CertificateSigningRequestSpec(
            request=_b64encode(csr.spec.request),
            signer_name=csr.spec.signer_name,
            usages=list(csr.spec.usages) or None,
            username=csr.spec.username or None,
            uid=csr.spec.uid or None,
            groups=list(csr.spec.groups) or None,
            extra={k: list(v) for k, v in csr.spec.extra.items()} or None,
            expiration_seconds=csr.spec.expiration_seconds,
        ),
        status=client.V1CertificateSigningRequestStatus(
            certificate=_b64encode(csr.status.certificate),
            conditions=[
                client.V1CertificateSigningRequestCondition(
                    type=c.type,
                    status=c.status,
                    reason=c.reason or None,
                    message=c.message or None,
                    last_update_time=c.last_update_time,
                )
                for c in csr.status.conditions
            ]
            or None,
        ),
    )


def sar_to_kube(spec: SubjectAccessReviewSpec) -> client.V1SubjectAccessReview:
    """Build an API SubjectAccessReview from a review spec."""
    attrs = spec.resource_attributes
    return client.V1SubjectAccessReview(
        api_version="authorization.k8s.io/v1",
        kind="SubjectAccessReview",
        spec=client.V1SubjectAccessReviewSpec(
            user=spec.user,
            uid=spec.uid or None,
            groups=list(spec.groups) or None,
            extra={k: list(v) for k, v in spec.extra.items()} or None,
            resource_attributes=client.V1ResourceAttributes(
                group=attrs.group,
                resource=attrs.resource,
                verb=attrs.verb,
                subresource=attrs.subresource or None,
                namespace=attrs.namespace or None,
                name=attrs.name or None,
            ),
        ),
    )


class KubeClient:
    """Wraps the certificates and authorization APIs used by the approver."""

    def __init__(self, api_client: client.ApiClient | None = None) -> None:
        """Initialize API wrappers.

        Args:
            api_client: Configured API client; the default client is used if omitted
        """
        self.certificates = client.CertificatesV1Api(api_client)
        self.authorization = client.AuthorizationV1Api(api_client)

    def create_subject_access_review(self, spec: SubjectAccessReviewSpec) -> bool:
        """Submit an access review and return whether it was allowed.

        Raises:
            TransportError: If the review could not be created
        """
        try:
            review = self.authorization.create_subject_access_review(sar_to_kube(spec))
        except _TRANSPORT_ERRORS as e:
            raise TransportError(f"subject access review for {spec.user!r} failed: {e}") from e
        return bool(review.status and review.status.allowed)

    def update_approval(self, csr: CertificateSigningRequest) -> CertificateSigningRequest:
        """Persist ``csr``'s conditions through the approval subresource.

        Raises:
            TransportError: If the update call failed
        """
        try:
            updated = self.certificates.replace_certificate_signing_request_approval(
                csr.name, csr_to_kube(csr)
            )
        except _TRANSPORT_ERRORS as e:
            raise TransportError(f"approval update for csr {csr.name!r} failed: {e}") from e
        return csr_from_kube(updated)

    def list_certificate_signing_requests(
        self, field_selector: str = "", **kwargs: Any
    ) -> tuple[list[CertificateSigningRequest], str]:
        """List CSRs matching ``field_selector``.

        Returns:
            Tuple of (csrs, list resource version)
        """
        result = self.certificates.list_certificate_signing_request(
            field_selector=field_selector or None, **kwargs
        )
        return [csr_from_kube(item) for item in result.items], result.metadata.resource_version

    def watch_certificate_signing_requests(
        self,
        field_selector: str = "",
        resource_version: str = "",
        timeout_seconds: int | None = None,
    ) -> Iterator[tuple[str, CertificateSigningRequest]]:
        """Stream ``(event_type, csr)`` pairs until the server closes the watch.

        ``ERROR`` events are raised as :class:`ApiException` so the caller can
        relist, e.g. when the resource version has expired (HTTP 410).
        """
        w = watch.Watch()
        for event in w.stream(
            self.certificates.list_certificate_signing_request,
            field_selector=field_selector or None,
            resource_version=resource_version or None,
            timeout_seconds=timeout_seconds,
        ):
            event_type = event["type"]
            if event_type == "ERROR":
                raw = event.get("raw_object") or {}
                raise ApiException(status=raw.get("code"), reason=raw.get("message"))
            yield event_type, csr_from_kube(event["object"])
