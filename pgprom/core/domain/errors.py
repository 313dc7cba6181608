"""
Error taxonomy for the adapter.

Every failure is returned to the caller as a single terminal error per call.
Nothing here is retried.
"""


class AdapterError(Exception):
    """Base class for all adapter failures."""


class StoreConnectionError(AdapterError):
    """The store could not be reached. Fatal at startup."""


class ProvisioningError(AdapterError):
    """Extension or table provisioning failed for a reason other than 'already exists'."""


class DecodeError(AdapterError):
    """A stored label document could not be decoded."""


class UnsupportedMatchType(AdapterError):
    """A matcher carries a match kind the compiler does not know."""


class WriteError(AdapterError):
    """Streaming or committing a write batch failed; the batch was rolled back."""


class ScanError(AdapterError):
    """Executing a query or iterating its rows failed."""


class ProtocolError(AdapterError):
    """A remote storage request body could not be decoded."""
