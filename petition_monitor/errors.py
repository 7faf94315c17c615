"""Error taxonomy for a monitoring cycle."""


class MonitorError(Exception):
    """Base class for every failure a monitoring cycle can hit."""

    reason = "monitor_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UpstreamDataInvalid(MonitorError):
    """The counter source answered, but without a usable count/goal."""

    reason = "upstream_data_invalid"


class UpstreamUnavailable(MonitorError):
    """Timeout, transport error or non-2xx from an upstream source."""

    reason = "upstream_unavailable"


class StoreError(MonitorError):
    """A store read or write could not be completed."""

    reason = "store_error"


class StoreConflict(StoreError):
    """The blob changed between read and conditional write."""

    reason = "store_conflict"


class StoreUnavailable(StoreError):
    """Transport or authentication failure talking to the backing medium."""

    reason = "store_unavailable"


class StoreDisabled(StoreError):
    """No backing medium is configured."""

    reason = "store_disabled"
