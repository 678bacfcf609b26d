"""Shared fixtures and test doubles."""

from datetime import datetime

import pytest
import pytz

from autodark.config import Config
from autodark.geocoding import Place
from autodark.location_provider import LocationProvider
from autodark.location_resolver import ResolverObserver
from autodark.schedule import GeoPosition, ScheduleMode


PARIS = GeoPosition(48.8566, 2.3522, "Europe/Paris")
PARIS_TZ = pytz.timezone("Europe/Paris")


def paris_time(year, month, day, hour, minute=0) -> datetime:
    return PARIS_TZ.localize(datetime(year, month, day, hour, minute))


class RecordingObserver(ResolverObserver):
    """Records every notification it receives."""

    def __init__(self):
        self.labels = []
        self.messages = []
        self.transition_updates = 0

    def set_location_label(self, text):
        self.labels.append(text)

    def set_information_label(self, text):
        self.messages.append(text)

    def updated_next_transition(self):
        self.transition_updates += 1


class FakeGeocoder:
    """Geocoding service answering from canned results.

    With `deferred=True` completions are queued until `complete()` is called,
    which lets tests deliver responses out of order.
    """

    def __init__(self, positions=None, place=None, error=None, deferred=False):
        self.positions = positions
        self.place = place
        self.error = error
        self.deferred = deferred
        self.pending = []
        self.forward_requests = []
        self.reverse_requests = []

    def geocode_address(self, address, completion):
        self.forward_requests.append(address)
        self._answer(completion, self.positions)

    def reverse_geocode(self, position, completion):
        self.reverse_requests.append(position)
        self._answer(completion, self.place)

    def _answer(self, completion, result):
        error = self.error if result is None else None
        if self.deferred:
            self.pending.append((completion, result, error))
        else:
            completion(result, error)

    def complete(self, index):
        completion, result, error = self.pending[index]
        completion(result, error)


class FakeProvider(LocationProvider):
    """Location provider that answers request_location synchronously."""

    def __init__(self, enabled=True, positions=None, error=None):
        super().__init__()
        self.enabled = enabled
        self.positions = positions
        self.error = error
        self.authorization_requests = 0
        self.location_requests = 0
        self.monitoring = False
        self.monitoring_starts = 0
        self.monitoring_stops = 0
        self.update_stops = 0

    def request_authorization(self):
        self.authorization_requests += 1

    def location_services_enabled(self):
        return self.enabled

    def request_location(self):
        self.location_requests += 1
        if self.positions:
            self.delegate.on_location_received(self.positions)
        elif self.error is not None:
            self.delegate.on_location_failed(self.error)

    def start_monitoring_significant_changes(self):
        self.monitoring = True
        self.monitoring_starts += 1

    def stop_updating_location(self):
        self.update_stops += 1

    def stop_monitoring_significant_changes(self):
        if self.monitoring:
            self.monitoring = False
            self.monitoring_stops += 1


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def manual_config():
    return Config(mode=ScheduleMode.MANUAL, address="Paris, France", timezone="Europe/Paris")


@pytest.fixture
def paris_noon():
    return lambda: paris_time(2024, 6, 21, 12)


@pytest.fixture
def paris_place():
    return Place(locality="Paris", country="France")
