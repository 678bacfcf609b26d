"""Forward and reverse geocoding through geopy."""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from geopy.exc import GeocoderTimedOut, GeocoderUnavailable, GeopyError
from geopy.geocoders import Nominatim

from autodark.errors import GeocodingError, LocationErrorKind
from autodark.schedule import GeoPosition


logger = logging.getLogger(__name__)

# Address keys Nominatim may use for the settlement, most specific first
LOCALITY_KEYS = ('city', 'town', 'village', 'municipality', 'hamlet', 'county', 'state')


def call_now(fn: Callable, *args) -> None:
    """Dispatch that runs the callback on the calling thread."""
    fn(*args)


@dataclass(frozen=True)
class Place:
    """Human readable name of a position."""

    locality: Optional[str]
    country: Optional[str]

    @property
    def label(self) -> str:
        return ", ".join(part for part in (self.locality, self.country) if part)


class GeocodingService:
    """Resolve addresses to positions and positions to place names."""

    def __init__(
        self,
        geocoder=None,
        user_agent: str = "autodark",
        timeout: int = 10,
        dispatch: Callable = call_now,
    ):
        """
        Initialize geocoding service.

        Args:
            geocoder: geopy geocoder instance (defaults to Nominatim)
            user_agent: User agent sent to Nominatim
            timeout: Request timeout in seconds
            dispatch: Callable used to deliver completions, e.g. onto the main thread
        """
        self.geocoder = geocoder or Nominatim(user_agent=user_agent, timeout=timeout)
        self.dispatch = dispatch

    def forward(self, address: str) -> List[GeoPosition]:
        """
        Geocode a free-text address.

        Returns:
            Candidate positions, best match first

        Raises:
            GeocodingError: On service errors or when nothing matches
        """
        try:
            locations = self.geocoder.geocode(address, exactly_one=False)
        except GeopyError as e:
            raise _translate(e) from e

        if not locations:
            raise GeocodingError(f"No results for address {address!r}")

        return [GeoPosition(loc.latitude, loc.longitude) for loc in locations]

    def reverse(self, position: GeoPosition) -> Place:
        """
        Look up the locality and country of a position.

        Raises:
            GeocodingError: On service errors or when the position has no name
        """
        try:
            location = self.geocoder.reverse(
                (position.latitude, position.longitude),
                exactly_one=True,
                language='en',
            )
        except GeopyError as e:
            raise _translate(e) from e

        if location is None:
            raise GeocodingError(f"No place found at {position}")

        address = location.raw.get('address', {})
        locality = next((address[key] for key in LOCALITY_KEYS if address.get(key)), None)
        place = Place(locality=locality, country=address.get('country'))
        if not place.label:
            raise GeocodingError(f"Place at {position} has no locality or country")
        return place

    def geocode_address(self, address: str, completion: Callable) -> None:
        """Forward geocode in the background; calls completion(positions, error)."""
        self._submit(self.forward, address, completion)

    def reverse_geocode(self, position: GeoPosition, completion: Callable) -> None:
        """Reverse geocode in the background; calls completion(place, error)."""
        self._submit(self.reverse, position, completion)

    def _submit(self, func: Callable, arg, completion: Callable) -> None:
        def worker():
            try:
                result, error = func(arg), None
            except GeocodingError as e:
                result, error = None, e
            except Exception as e:
                logger.exception(f"Unexpected geocoding failure: {e}")
                result, error = None, GeocodingError(str(e))
            self.dispatch(completion, result, error)

        threading.Thread(target=worker, name="autodark-geocoder", daemon=True).start()


def _translate(error: GeopyError) -> GeocodingError:
    """Map a geopy exception onto a GeocodingError with the matching kind."""
    if isinstance(error, (GeocoderUnavailable, GeocoderTimedOut)):
        return GeocodingError(f"Geocoding service unreachable: {error}", LocationErrorKind.NETWORK)
    return GeocodingError(f"Geocoding failed: {error}")
