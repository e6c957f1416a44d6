"""Blobsim exception hierarchy.

The simulation core never raises for internal invariant checks (those are
logged and treated as no-ops); exceptions are reserved for callers that
hand the core something it cannot run with.
"""


class BlobsimError(Exception):
    """Root of all blobsim exceptions."""


class ConfigurationError(BlobsimError):
    """Invalid or unknown configuration values."""
