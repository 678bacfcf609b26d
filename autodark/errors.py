"""Error types raised by location, geocoding and sun lookups."""

from enum import Enum


class LocationErrorKind(Enum):
    """Categories a location failure is presented to the user as."""

    DENIED = "denied"
    NETWORK = "network"
    UNKNOWN = "unknown"


class LocationError(Exception):
    """A location provider could not produce a position."""

    def __init__(self, message: str, kind: LocationErrorKind = LocationErrorKind.UNKNOWN):
        super().__init__(message)
        self.kind = kind


class GeocodingError(LocationError):
    """Forward or reverse geocoding returned an error or no candidates."""


class SolarComputationError(Exception):
    """Sun times could not be computed for a coordinate."""
