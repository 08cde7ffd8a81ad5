"""Approver constants and controller configuration."""

from dataclasses import dataclass, field
from pathlib import Path

VNODE_CLIENT_SIGNER_NAME = "kubernetes.io/kube-apiserver-client"
SUBJECT_COMMON_NAME_PREFIX = "system:vnode"
SUBJECT_ORGANIZATION = "system:vnodes"

DEFAULT_KUBECONFIG = Path("/etc/vnode/kubeconfig.conf")


@dataclass
class ControllerConfig:
    """Runtime configuration for the CSR approving controller."""

    name: str = "csrapproving"
    workers: int = 1
    # Per-key exponential backoff on failed syncs, in seconds.
    base_delay: float = 0.2
    max_delay: float = 1000.0
    # Global retry token bucket shared by all keys.
    qps: float = 10.0
    burst: int = 100
    resync_period: float = 60.0
    signer_name: str = VNODE_CLIENT_SIGNER_NAME
    kubeconfig: Path = field(default_factory=lambda: DEFAULT_KUBECONFIG)
    sync_poll_interval: float = 0.1
    worker_poll_interval: float = 1.0

    @property
    def field_selector(self) -> str:
        """Field selector limiting the CSR watch to the configured signer."""
        return f"spec.signerName={self.signer_name}"
