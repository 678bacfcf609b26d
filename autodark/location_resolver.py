"""Resolve the user's location and keep the next dark mode toggle up to date."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional

import pytz

from autodark import APP_NAME
from autodark.config import Config
from autodark.errors import LocationErrorKind, SolarComputationError
from autodark.geocoding import GeocodingService, Place
from autodark.location_provider import COARSE_ACCURACY_METERS, IPLocationProvider, LocationProvider
from autodark.schedule import GeoPosition, ScheduleMode, ToggleTransition
from autodark.sun_calculator import SunCalculator


PERMISSION_MESSAGE = f"Authorize {APP_NAME} to detect your location in System Settings."
NETWORK_MESSAGE = "There's no internet connection."
UNKNOWN_MESSAGE = "Can't detect your location."

ERROR_MESSAGES = {
    LocationErrorKind.DENIED: PERMISSION_MESSAGE,
    LocationErrorKind.NETWORK: NETWORK_MESSAGE,
    LocationErrorKind.UNKNOWN: UNKNOWN_MESSAGE,
}


def classify_error(error: Exception) -> LocationErrorKind:
    """Category of a location failure; anything unrecognised is UNKNOWN."""
    kind = getattr(error, 'kind', None)
    return kind if isinstance(kind, LocationErrorKind) else LocationErrorKind.UNKNOWN


def error_message(error: Exception) -> str:
    """User-facing instruction for a location failure."""
    return ERROR_MESSAGES[classify_error(error)]


class ResolverObserver(ABC):
    """Receiver of LocationResolver updates."""

    @abstractmethod
    def set_location_label(self, text: str) -> None:
        """The name of the resolved location changed."""
        pass

    @abstractmethod
    def set_information_label(self, text: str) -> None:
        """An informational or error message should be shown."""
        pass

    @abstractmethod
    def updated_next_transition(self) -> None:
        """`LocationResolver.next_transition` holds a new value."""
        pass


class LocationResolver:
    """Finds the user's position and computes the next toggle transition.

    In manual mode the configured address is geocoded. In the automatic
    modes the position comes from a LocationProvider and is named through
    reverse geocoding. Results are reported to the observer; the next
    transition itself is read from `next_transition`.
    """

    def __init__(
        self,
        mode: ScheduleMode,
        config: Config,
        observer: Optional[ResolverObserver] = None,
        geocoder: Optional[GeocodingService] = None,
        provider: Optional[LocationProvider] = None,
        sun_calculator: Optional[SunCalculator] = None,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Create the resolver and start acquiring a location.

        Args:
            mode: How the location is acquired, fixed for the resolver's lifetime
            config: Configuration supplying the manual address and defaults
            observer: Receiver of label, message and transition updates
            geocoder: Geocoding service (defaults to Nominatim)
            provider: Location provider for automatic modes (defaults to IP geolocation)
            sun_calculator: Sun time calculator
            logger: Logger for diagnostics
            clock: Returns the current timezone-aware datetime
        """
        self.mode = mode
        self.config = config
        self.observer = observer
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock or (lambda: datetime.now(pytz.utc))
        self.sun_calculator = sun_calculator or SunCalculator(config.timezone)
        self.geocoder = geocoder or GeocodingService(
            user_agent=config.geocoder_user_agent,
            timeout=config.geocoder_timeout,
        )
        self.provider = provider

        self.current_location: Optional[GeoPosition] = None
        self.location_label: Optional[str] = None
        self.next_transition: Optional[ToggleTransition] = None
        self._request_id = 0

        self.logger.info(f"Created location resolver ({mode.value})")
        self.determine_current_location()

    def set_observer(self, observer: Optional[ResolverObserver]) -> None:
        """Register the single receiver of updates, replacing any previous one."""
        self.observer = observer

    def determine_current_location(self) -> None:
        """Start acquiring a location according to the mode."""
        if not self.mode.is_automatic:
            self.set_manual_location()
            return

        if self.provider is None:
            self.provider = IPLocationProvider(
                enabled=self.config.location_services,
                update_interval=self.config.update_interval,
                significant_change_km=self.config.significant_change_km,
            )
        self.provider.delegate = self
        self.provider.desired_accuracy = COARSE_ACCURACY_METERS
        self.provider.request_authorization()

        if not self.provider.location_services_enabled():
            self.logger.warning("Doesn't have permission to detect location")
            self._inform(PERMISSION_MESSAGE)
            return

        self.logger.info("Requesting device location")
        self.provider.request_location()
        if self.mode is ScheduleMode.AUTOMATIC_CONTINUOUS:
            self.provider.start_monitoring_significant_changes()

    def set_manual_location(self) -> None:
        """Geocode the configured address; on success recompute the transition."""
        address = self.config.address
        if not address:
            self.logger.debug("No manual address configured")
            return

        self.logger.info(f"Geocoding manual location {address!r}")
        request_id = self._next_request_id()

        def completion(positions: Optional[List[GeoPosition]], error: Optional[Exception]):
            if self._is_stale(request_id):
                return
            if not positions:
                self.logger.warning(f"Couldn't receive location with {error or 'no error'}")
                return

            self.current_location = positions[0]
            self.logger.info(f"Received location {self.current_location} with mode {self.mode.value}")
            self._set_label(address)
            self.calculate_next_transition()

        self.geocoder.geocode_address(address, completion)

    def on_location_received(self, positions: List[GeoPosition]) -> None:
        """LocationProvider delegate: a new position is available."""
        if not positions:
            return
        position = positions[0]
        self.current_location = position
        self.logger.debug(f"Location update {position}")
        request_id = self._next_request_id()

        def completion(place: Optional[Place], error: Optional[Exception]):
            if self._is_stale(request_id):
                return
            if place is None:
                self.logger.warning(f"Couldn't name location with {error or 'no error'}")
                self._set_label(APP_NAME)
                return

            self.provider.stop_updating_location()
            self.provider.stop_monitoring_significant_changes()
            self._set_label(place.label)
            self.logger.info(f"Received location {place.label} with mode {self.mode.value}")
            self.calculate_next_transition()

        self.geocoder.reverse_geocode(position, completion)

    def on_location_failed(self, error: Exception) -> None:
        """LocationProvider delegate: no position could be produced."""
        if self.current_location is not None:
            self.logger.debug(f"Ignoring location failure, position already known: {error}")
            return

        self.logger.warning(f"Couldn't receive location with {error}")
        self._set_label(APP_NAME)
        self._inform(error_message(error))

    def calculate_next_transition(self) -> None:
        """Compute the next toggle for the resolved position and announce it."""
        if self.current_location is None:
            return

        try:
            transition = self.sun_calculator.get_next_transition(self.current_location, self.clock())
        except SolarComputationError as e:
            self.logger.error(f"Couldn't calculate next toggle: {e}")
            return

        self.next_transition = transition
        self.logger.info(f"Sent next toggle: {transition}")
        if self.observer is not None:
            self.observer.updated_next_transition()

    def _next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    def _is_stale(self, request_id: int) -> bool:
        if request_id != self._request_id:
            self.logger.debug(f"Discarding stale geocoding response #{request_id}")
            return True
        return False

    def _set_label(self, text: str):
        self.location_label = text
        if self.observer is not None:
            self.observer.set_location_label(text)

    def _inform(self, text: str):
        if self.observer is not None:
            self.observer.set_information_label(text)
