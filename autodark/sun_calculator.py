"""Sun position calculation using astral library."""

import logging
from datetime import date as date_type, datetime, timedelta
from typing import List, Optional

from astral import LocationInfo
from astral.sun import noon, sunrise, sunset
import pytz

from autodark.errors import SolarComputationError
from autodark.schedule import GeoPosition, ToggleTransition


logger = logging.getLogger(__name__)

# Calendar days around the current one searched for sunrise/sunset events
EVENT_WINDOW = range(-1, 3)


class SunCalculator:
    """Calculate sunrise and sunset for resolved positions."""

    def __init__(self, timezone: str = "UTC"):
        """
        Initialize sun calculator.

        Args:
            timezone: IANA timezone used for positions that don't carry one
                (e.g. 'Europe/Paris')
        """
        self.tz = pytz.timezone(timezone)

    def timezone_for(self, position: GeoPosition):
        """Timezone the calendar day is evaluated in for `position`."""
        if position.timezone:
            try:
                return pytz.timezone(position.timezone)
            except pytz.UnknownTimeZoneError:
                logger.warning(f"Unknown timezone {position.timezone!r}, using {self.tz.zone}")
        return self.tz

    def _observer(self, position: GeoPosition):
        if not (-90 <= position.latitude <= 90) or not (-180 <= position.longitude <= 180):
            raise SolarComputationError(f"Coordinate out of range: {position}")
        return LocationInfo(latitude=position.latitude, longitude=position.longitude).observer

    def get_sun_times(self, position: GeoPosition, date: Optional[date_type] = None) -> dict:
        """
        Get sun times for a position on a specific date.

        Args:
            position: Coordinate to calculate for
            date: Calendar date in the position's timezone (defaults to today)

        Returns:
            Dictionary with 'sunrise', 'noon', 'sunset' as timezone-aware datetime objects

        Raises:
            SolarComputationError: If the coordinate is out of range or the sun
                doesn't rise or set on that date
        """
        observer = self._observer(position)
        tz = self.timezone_for(position)
        if date is None:
            date = datetime.now(tz).date()

        try:
            return {
                'sunrise': sunrise(observer, date=date, tzinfo=tz),
                'noon': noon(observer, date=date, tzinfo=tz),
                'sunset': sunset(observer, date=date, tzinfo=tz),
            }
        except ValueError as e:
            # Polar regions where sun doesn't rise/set
            raise SolarComputationError(f"No sunrise/sunset at {position} on {date}: {e}") from e

    def get_events(self, position: GeoPosition, when: datetime) -> List[ToggleTransition]:
        """
        Sunrises (dark off) and sunsets (dark on) in the days around `when`.

        The search spans several calendar days, so the result doesn't depend
        on which timezone's "today" `when` is judged in.

        Returns:
            Events in chronological order; days without a sunrise or sunset
            are skipped

        Raises:
            SolarComputationError: If the coordinate is out of range or no
                event occurs in the searched days
        """
        observer = self._observer(position)
        tz = self.timezone_for(position)
        today = when.astimezone(tz).date()

        # astral may return the same event for neighbouring days
        events = {}
        for offset in EVENT_WINDOW:
            day = today + timedelta(days=offset)
            for event, dark in ((sunrise, False), (sunset, True)):
                try:
                    timestamp = event(observer, date=day, tzinfo=tz)
                except ValueError as e:
                    logger.debug(f"No {event.__name__} at {position} on {day}: {e}")
                    continue
                key = (timestamp.replace(microsecond=0), dark)
                events.setdefault(key, ToggleTransition(timestamp=timestamp, dark=dark))

        if not events:
            raise SolarComputationError(f"No sunrise/sunset at {position} around {today}")
        return sorted(events.values(), key=lambda e: e.timestamp)

    def is_daytime(self, position: GeoPosition, when: datetime) -> bool:
        """Whether the last sunrise/sunset before `when` was a sunrise."""
        events = self.get_events(position, when)
        past = [e for e in events if e.timestamp <= when]
        if past:
            return not past[-1].dark
        # Nothing before `when`: it's day if the sun sets next
        return events[0].dark

    def get_next_transition(self, position: GeoPosition, now: datetime) -> ToggleTransition:
        """
        Calculate the next dark mode toggle.

        During the day the next toggle is the coming sunset (dark on). At
        night it is the coming sunrise (dark off).

        Args:
            position: Resolved position
            now: Current datetime (timezone-aware)

        Returns:
            ToggleTransition for the next toggle

        Raises:
            SolarComputationError: If sun times can't be computed for `position`
        """
        events = self.get_events(position, now)
        daytime = self.is_daytime(position, now)

        for event in events:
            if event.timestamp > now and event.dark == daytime:
                return event

        wanted = "sunset" if daytime else "sunrise"
        raise SolarComputationError(f"No {wanted} at {position} after {now}")
