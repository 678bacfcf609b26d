"""Device location sources."""

import json
import logging
import math
import threading
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from typing import Callable, Optional

from autodark.errors import LocationError, LocationErrorKind
from autodark.geocoding import call_now
from autodark.schedule import GeoPosition


logger = logging.getLogger(__name__)

# Earth radius in kilometers
EARTH_RADIUS_KM = 6371.0

# Accuracy hint in meters; sun times only need city-scale precision
COARSE_ACCURACY_METERS = 3000

IP_API_URL = "http://ip-api.com/json/?fields=status,message,lat,lon,timezone"


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate great-circle distance between two points.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in kilometers
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2 +
        math.cos(lat1_rad) * math.cos(lat2_rad) *
        math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def get_location_from_ip(timeout: int = 5) -> GeoPosition:
    """Detect user's location via IP geolocation.

    Returns:
        GeoPosition including the timezone reported for the address

    Raises:
        LocationError: If geolocation fails
    """
    try:
        with urllib.request.urlopen(IP_API_URL, timeout=timeout) as response:
            data = json.loads(response.read().decode())
    except (urllib.error.URLError, TimeoutError) as e:
        raise LocationError(f"IP geolocation unreachable: {e}", LocationErrorKind.NETWORK) from e
    except ValueError as e:
        raise LocationError(f"Invalid IP geolocation response: {e}") from e

    if data.get('status') != 'success':
        raise LocationError(f"IP geolocation failed: {data.get('message', 'unknown error')}")

    return GeoPosition(data['lat'], data['lon'], data.get('timezone'))


class LocationProvider(ABC):
    """Source of one-shot and continuous location updates.

    Results are reported to `delegate`, which must implement
    `on_location_received(positions)` and `on_location_failed(error)`.
    """

    def __init__(self):
        self.delegate = None
        self.desired_accuracy: Optional[float] = None

    @abstractmethod
    def request_authorization(self) -> None:
        """Ask for permission to use location services."""
        pass

    @abstractmethod
    def location_services_enabled(self) -> bool:
        """Whether location services are available to this application."""
        pass

    @abstractmethod
    def request_location(self) -> None:
        """Deliver a single location update."""
        pass

    @abstractmethod
    def start_monitoring_significant_changes(self) -> None:
        """Report new positions whenever the device moves significantly."""
        pass

    @abstractmethod
    def stop_updating_location(self) -> None:
        """Drop a pending one-shot request. Safe to call repeatedly."""
        pass

    @abstractmethod
    def stop_monitoring_significant_changes(self) -> None:
        """End significant-change monitoring. Safe to call repeatedly."""
        pass


class IPLocationProvider(LocationProvider):
    """Location provider backed by IP geolocation."""

    def __init__(
        self,
        enabled: bool = True,
        update_interval: float = 900,
        significant_change_km: float = 3.0,
        dispatch: Callable = call_now,
        lookup: Callable[[], GeoPosition] = get_location_from_ip,
    ):
        """
        Initialize IP location provider.

        Args:
            enabled: Whether the user allows location lookups
            update_interval: Seconds between polls while monitoring
            significant_change_km: Minimum movement reported while monitoring
            dispatch: Callable used to deliver results to the delegate
            lookup: Function returning the current position
        """
        super().__init__()
        self.enabled = enabled
        self.update_interval = update_interval
        self.significant_change_km = significant_change_km
        self.dispatch = dispatch
        self.lookup = lookup

        self._lock = threading.Lock()
        self._pending = False
        self._monitoring = False
        self._timer: Optional[threading.Timer] = None
        self._last_reported: Optional[GeoPosition] = None

    @property
    def monitoring(self) -> bool:
        return self._monitoring

    def request_authorization(self) -> None:
        state = "granted" if self.enabled else "denied"
        logger.info(f"Location access {state}")

    def location_services_enabled(self) -> bool:
        return self.enabled

    def request_location(self) -> None:
        with self._lock:
            self._pending = True
        threading.Thread(target=self._one_shot, name="autodark-location", daemon=True).start()

    def start_monitoring_significant_changes(self) -> None:
        with self._lock:
            if self._monitoring:
                return
            self._monitoring = True
        logger.info(
            f"Monitoring location every {self.update_interval}s "
            f"(threshold {self.significant_change_km} km)"
        )
        self._schedule_poll()

    def stop_updating_location(self) -> None:
        with self._lock:
            self._pending = False

    def stop_monitoring_significant_changes(self) -> None:
        with self._lock:
            if not self._monitoring:
                return
            self._monitoring = False
            timer, self._timer = self._timer, None
        if timer:
            timer.cancel()
        logger.info("Stopped monitoring location changes")

    def _fetch(self) -> GeoPosition:
        if not self.enabled:
            raise LocationError("Location services are disabled", LocationErrorKind.DENIED)
        return self.lookup()

    def _one_shot(self):
        try:
            position = self._fetch()
        except LocationError as e:
            if self._take_pending():
                self._fail(e)
            return

        if self._take_pending():
            with self._lock:
                self._last_reported = position
            self._report(position)

    def _take_pending(self) -> bool:
        with self._lock:
            pending, self._pending = self._pending, False
        return pending

    def _schedule_poll(self):
        timer = threading.Timer(self.update_interval, self._poll)
        timer.daemon = True
        with self._lock:
            if not self._monitoring:
                return
            self._timer = timer
        timer.start()

    def _poll(self):
        try:
            position = self._fetch()
        except LocationError as e:
            logger.debug(f"Location poll failed: {e}")
            if self.monitoring:
                self._fail(e)
        else:
            if self._claim_significant(position):
                self._report(position)
        finally:
            self._schedule_poll()

    def _claim_significant(self, position: GeoPosition) -> bool:
        """Record `position` as reported if monitoring and it moved far enough."""
        with self._lock:
            if not self._monitoring:
                return False
            last = self._last_reported
            if last is not None:
                moved = haversine(last.latitude, last.longitude, position.latitude, position.longitude)
                if moved < self.significant_change_km:
                    return False
            self._last_reported = position
        return True

    def _report(self, position: GeoPosition):
        if self.delegate is not None:
            self.dispatch(self.delegate.on_location_received, [position])

    def _fail(self, error: LocationError):
        if self.delegate is not None:
            self.dispatch(self.delegate.on_location_failed, error)
