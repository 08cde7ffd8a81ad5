#!/usr/bin/env python3
"""Run the virtual node CSR approving controller until SIGINT or SIGTERM."""

import argparse
import os
import signal
import sys
import threading
from functools import partial
from pathlib import Path

import sentry_sdk

from vnode_approver.lib.approver import new_csr_approving_controller
from vnode_approver.lib.config import DEFAULT_KUBECONFIG, VNODE_CLIENT_SIGNER_NAME, ControllerConfig
from vnode_approver.lib.informer import SharedInformer
from vnode_approver.lib.kube_client import KubeClient, load_api_client
from vnode_approver.lib.logging_config import LOGGER, set_log_level


def build_informer(kube_client: KubeClient, config: ControllerConfig) -> SharedInformer:
    """Build a CSR informer filtered to the configured signer."""
    return SharedInformer(
        list_func=partial(
            kube_client.list_certificate_signing_requests, field_selector=config.field_selector
        ),
        watch_func=lambda resource_version: kube_client.watch_certificate_signing_requests(
            field_selector=config.field_selector,
            resource_version=resource_version,
            timeout_seconds=int(config.resync_period),
        ),
    )


def run_approver(
    kube_client: KubeClient, config: ControllerConfig, stop_event: threading.Event
) -> None:
    """Start the informer in the background and run the controller until stopped."""
    informer = build_informer(kube_client, config)
    controller = new_csr_approving_controller(kube_client, informer, config)

    informer_thread = threading.Thread(
        target=informer.run, args=(stop_event,), name="csr-informer", daemon=True
    )
    informer_thread.start()
    controller.run(config.workers, stop_event)


def main() -> int:
    """Run the approver.

    Returns:
        Exit code (0 for clean shutdown, 1 for failure)
    """
    parser = argparse.ArgumentParser(
        description="Auto-approve virtual node client certificate signing requests"
    )
    parser.add_argument(
        "--kubeconfig",
        type=Path,
        default=DEFAULT_KUBECONFIG,
        help=f"Kubeconfig path; in-cluster config is used if missing (default: {DEFAULT_KUBECONFIG})",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of concurrent reconcile workers (default: 1)",
    )
    parser.add_argument(
        "--resync-period",
        type=float,
        default=60.0,
        help="Seconds before a watch is restarted with a relist (default: 60)",
    )
    parser.add_argument(
        "--signer-name",
        default=VNODE_CLIENT_SIGNER_NAME,
        help=f"Only watch CSRs for this signer (default: {VNODE_CLIENT_SIGNER_NAME})",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    parser.add_argument(
        "--sentry-dsn",
        default=os.environ.get("SENTRY_DSN"),
        help="Sentry DSN for error reporting (default: $SENTRY_DSN)",
    )
    args = parser.parse_args()

    if args.workers < 1:
        parser.error("--workers must be at least 1")

    set_log_level(args.log_level)
    if args.sentry_dsn:
        sentry_sdk.init(dsn=args.sentry_dsn)

    config = ControllerConfig(
        workers=args.workers,
        resync_period=args.resync_period,
        signer_name=args.signer_name,
        kubeconfig=args.kubeconfig,
    )

    stop_event = threading.Event()

    def _stop(signum, frame):
        LOGGER.info("Received signal %d, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)

    try:
        kube_client = KubeClient(load_api_client(config.kubeconfig))
    except Exception as e:
        LOGGER.error("Failed to build kubernetes client: %s", e)
        return 1

    LOGGER.info("Watching CSRs with %s", config.field_selector)
    run_approver(kube_client, config, stop_event)
    return 0


if __name__ == "__main__":
    sys.exit(main())
