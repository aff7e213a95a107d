# cafeteria_analytics/exceptions.py
"""
Error taxonomy for the telemetry pipeline.
LocationNotFound maps to HTTP 404, other pipeline errors to 503, anything else to 500.
"""


class TelemetryError(Exception):
    """Base class for all pipeline errors."""


class MalformedPayload(TelemetryError):
    """Inbound payload is not a decodable JSON object."""


class NoResolvableOwner(TelemetryError):
    """No counter or location could be found for an event: it is dropped."""


class UnparseableMetric(TelemetryError):
    """A metric field holds text that is not a number. Never fails the event."""

    def __init__(self, field: str, value):
        super().__init__(f"{field}={value!r} is not numeric")
        self.field = field
        self.value = value


class StoreUnavailable(TelemetryError):
    """The record store could not persist or read (DB error)."""


class BroadcastFailure(TelemetryError):
    """A live update could not be delivered to subscribers."""


class LocationNotFound(TelemetryError):
    """Aggregation requested for a location that does not exist."""

    def __init__(self, ref):
        super().__init__(f"Cafeteria location not found: {ref}")
        self.ref = ref


class ReportDeliveryError(TelemetryError):
    """The external report formatter rejected or did not answer a report."""
