"""Error taxonomy for the venue proximity cache."""


class VenueCacheError(Exception):
    """Base class for all venue cache errors."""


class StorageUnavailable(VenueCacheError):
    """The venue store could not be reached. Fatal to the current call."""


class ProviderUnavailable(VenueCacheError):
    """The external venue directory failed or returned an unusable response."""


class ProviderTimeout(ProviderUnavailable):
    """The external venue directory did not answer in time."""


class MalformedCandidate(VenueCacheError):
    """A provider candidate lacks the fields required to store it."""

    def __init__(self, external_id: str | None, reason: str):
        self.external_id = external_id
        self.reason = reason
        super().__init__(f"Malformed candidate {external_id!r}: {reason}")


class LogWriteFailed(VenueCacheError):
    """The search log could not be read or written. Never fatal to a search."""
