"""
homeops/errors.py
Error taxonomy for the message pipeline.

Only StorageFailure raised by the ledger insert turns into a redelivery.
Everything else is absorbed by the stage that hit it (see pipeline.py).
"""


class HomeOpsError(Exception):
    """Base class for all homeops errors."""


class DuplicateDetected(HomeOpsError):
    """
    Message already in the ledger. Expected under at-least-once delivery.
    Taxonomy marker only: Ledger.record_if_new reports a duplicate as
    LedgerResult(inserted=False) and the pipeline records a 'duplicate' stage,
    so nothing raises this.
    """


class StorageFailure(HomeOpsError):
    """A storage write or read failed for a reason other than a key collision."""


class ClassificationFailure(HomeOpsError):
    """The classifier was unreachable, timed out, or returned a malformed result."""


class PolicyReadFailure(HomeOpsError):
    """Counter or history could not be read. The policy engine fails closed."""


class DispatchFailure(HomeOpsError):
    """Reply transport rejected or did not answer."""


class SecretUnavailable(HomeOpsError):
    """A credential could not be resolved."""
