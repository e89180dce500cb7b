class StoreError(Exception):
    """Base class for all store failures."""


class StoreWriteFailed(StoreError):
    """An insert, delete or save could not be completed."""


class StoreFetchFailed(StoreError):
    """A read against the store could not be completed."""


class ConversionFailed(StoreError):
    """A raw store row could not be turned into a Record."""
