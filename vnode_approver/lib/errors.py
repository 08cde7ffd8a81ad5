"""Error types and the process-wide error reporter."""

import logging

import sentry_sdk

logger = logging.getLogger(__name__)


class ApproverError(Exception):
    """Base class for errors raised while reconciling a CSR."""


class ParseError(ApproverError):
    """The CSR's request bytes are not a decodable PEM certificate request."""


class TransportError(ApproverError):
    """An access review or approval update call to the API server failed."""


class IgnorableError(ApproverError):
    """A failure that should be retried but not reported.

    Raised when a request was recognized but the requester was not authorized
    for it. That is usually user error and reporting it would be spammy, so it
    is logged quietly. The sync is still retried.
    """


def is_ignorable(err: BaseException) -> bool:
    """Return True if ``err`` should be logged without being reported."""
    return isinstance(err, IgnorableError)


def handle_error(err: BaseException, message: str) -> None:
    """Report an unexpected error: log it at ERROR and forward it to Sentry.

    ``sentry_sdk.capture_exception`` is a no-op until ``sentry_sdk.init`` has
    been called, so this is safe to use without a DSN configured.
    """
    logger.error("%s: %s", message, err, exc_info=err)
    sentry_sdk.capture_exception(err)
