"""
Error taxonomy for the weather push service.

- InvalidRegistration: malformed registration input, rejected before persistence
- StorageError: repository fault, no partial mutation is visible
- ProviderUnavailable / DataGapError: per-subscription, fallback notification, retried next cycle
- PermanentEndpointError: the push endpoint is gone, subscription is deleted
- TransientDeliveryError: a single send failed, retried next cycle
"""


class WeatherPushError(Exception):
    """Base class for all service errors."""

    code = "internal_error"


class InvalidRegistration(WeatherPushError):
    code = "invalid_registration"


class StorageError(WeatherPushError):
    code = "storage_unavailable"


class ProviderUnavailable(WeatherPushError):
    code = "provider_unavailable"


class DataGapError(WeatherPushError):
    """Hourly forecast does not cover the current or the next local hour."""

    code = "data_gap"

    def __init__(self, location: str, local_hour: int, next_hour: int):
        super().__init__(f"Could not find data for hours {local_hour} and {next_hour} in {location}")
        self.location = location
        self.local_hour = local_hour
        self.next_hour = next_hour


class PermanentEndpointError(WeatherPushError):
    code = "endpoint_gone"

    def __init__(self, endpoint: str):
        super().__init__(f"Push endpoint permanently invalid: {endpoint[:30]}...")
        self.endpoint = endpoint


class TransientDeliveryError(WeatherPushError):
    code = "delivery_failed"
