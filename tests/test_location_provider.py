"""
Tests for IP based location provider.
"""

import json
import threading
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from autodark.errors import LocationError, LocationErrorKind
from autodark.location_provider import (
    EARTH_RADIUS_KM,
    IPLocationProvider,
    get_location_from_ip,
    haversine,
)
from autodark.schedule import GeoPosition


PARIS = GeoPosition(48.8566, 2.3522, "Europe/Paris")
VERSAILLES = GeoPosition(48.8049, 2.1204, "Europe/Paris")


class Delegate:
    """Collects provider callbacks and signals each one."""

    def __init__(self):
        self.received = []
        self.failures = []
        self.event = threading.Event()

    def on_location_received(self, positions):
        self.received.append(positions)
        self.event.set()

    def on_location_failed(self, error):
        self.failures.append(error)
        self.event.set()


def response(payload):
    handle = MagicMock()
    handle.__enter__.return_value.read.return_value = json.dumps(payload).encode()
    return handle


# =============================================================================
# Haversine Distance
# =============================================================================

class TestHaversine:
    """Tests for haversine function."""

    def test_same_point(self):
        assert haversine(48.0, 2.0, 48.0, 2.0) == 0.0

    def test_paris_versailles(self):
        dist = haversine(PARIS.latitude, PARIS.longitude, VERSAILLES.latitude, VERSAILLES.longitude)
        assert 15 < dist < 20

    def test_one_degree_latitude(self):
        assert 110 < haversine(0.0, 0.0, 1.0, 0.0) < 112

    def test_earth_radius_constant(self):
        assert EARTH_RADIUS_KM == 6371.0


# =============================================================================
# IP lookup
# =============================================================================

class TestGetLocationFromIp:
    """Tests for get_location_from_ip."""

    @patch("autodark.location_provider.urllib.request.urlopen")
    def test_success(self, urlopen):
        urlopen.return_value = response(
            {'status': 'success', 'lat': 48.8566, 'lon': 2.3522, 'timezone': 'Europe/Paris'}
        )

        assert get_location_from_ip() == PARIS

    @patch("autodark.location_provider.urllib.request.urlopen")
    def test_failed_status(self, urlopen):
        urlopen.return_value = response({'status': 'fail', 'message': 'reserved range'})

        with pytest.raises(LocationError) as exc_info:
            get_location_from_ip()
        assert exc_info.value.kind is LocationErrorKind.UNKNOWN
        assert "reserved range" in str(exc_info.value)

    @patch("autodark.location_provider.urllib.request.urlopen")
    def test_offline(self, urlopen):
        urlopen.side_effect = urllib.error.URLError("Name or service not known")

        with pytest.raises(LocationError) as exc_info:
            get_location_from_ip()
        assert exc_info.value.kind is LocationErrorKind.NETWORK

    @patch("autodark.location_provider.urllib.request.urlopen")
    def test_garbage_response(self, urlopen):
        handle = MagicMock()
        handle.__enter__.return_value.read.return_value = b"<html>"
        urlopen.return_value = handle

        with pytest.raises(LocationError) as exc_info:
            get_location_from_ip()
        assert exc_info.value.kind is LocationErrorKind.UNKNOWN


# =============================================================================
# Provider
# =============================================================================

class TestIPLocationProvider:
    """Tests for IPLocationProvider."""

    def test_one_shot(self):
        delegate = Delegate()
        provider = IPLocationProvider(lookup=lambda: PARIS)
        provider.delegate = delegate

        provider.request_location()

        assert delegate.event.wait(5)
        assert delegate.received == [[PARIS]]
        assert delegate.failures == []

    def test_disabled_reports_denied(self):
        delegate = Delegate()
        lookup = MagicMock(return_value=PARIS)
        provider = IPLocationProvider(enabled=False, lookup=lookup)
        provider.delegate = delegate

        assert not provider.location_services_enabled()
        provider.request_location()

        assert delegate.event.wait(5)
        assert delegate.failures[0].kind is LocationErrorKind.DENIED
        lookup.assert_not_called()

    def test_lookup_error_forwarded(self):
        delegate = Delegate()
        error = LocationError("offline", LocationErrorKind.NETWORK)
        provider = IPLocationProvider(lookup=MagicMock(side_effect=error))
        provider.delegate = delegate

        provider.request_location()

        assert delegate.event.wait(5)
        assert delegate.failures == [error]

    def test_stopped_request_not_delivered(self):
        delegate = Delegate()
        release = threading.Event()
        finished = threading.Event()

        def lookup():
            release.wait(5)
            finished.set()
            return PARIS

        provider = IPLocationProvider(lookup=lookup)
        provider.delegate = delegate
        provider.request_location()
        provider.stop_updating_location()
        release.set()

        assert finished.wait(5)
        assert not delegate.event.wait(0.2)
        assert delegate.received == []

    def test_monitoring_reports_only_significant_moves(self):
        delegate = Delegate()
        positions = iter([PARIS, GeoPosition(48.8570, 2.3530, "Europe/Paris")] + [VERSAILLES] * 1000)
        provider = IPLocationProvider(
            update_interval=0.01,
            significant_change_km=3.0,
            lookup=lambda: next(positions),
        )
        provider.delegate = delegate

        provider.start_monitoring_significant_changes()
        try:
            deadline = threading.Event()
            for _ in range(500):
                if len(delegate.received) >= 2:
                    break
                deadline.wait(0.01)
        finally:
            provider.stop_monitoring_significant_changes()

        assert delegate.received[:2] == [[PARIS], [VERSAILLES]]

    def test_stop_monitoring_is_idempotent(self):
        provider = IPLocationProvider(update_interval=60, lookup=lambda: PARIS)

        provider.start_monitoring_significant_changes()
        provider.start_monitoring_significant_changes()
        assert provider.monitoring

        provider.stop_monitoring_significant_changes()
        provider.stop_monitoring_significant_changes()
        provider.stop_updating_location()
        assert not provider.monitoring

    def test_no_delegate(self):
        finished = threading.Event()

        def lookup():
            finished.set()
            return PARIS

        provider = IPLocationProvider(lookup=lookup)
        provider.request_location()

        assert finished.wait(5)

    def test_poll_in_flight_when_stopped_not_delivered(self):
        delegate = Delegate()
        entered = threading.Event()
        release = threading.Event()
        finished = threading.Event()

        def lookup():
            entered.set()
            release.wait(5)
            finished.set()
            return PARIS

        provider = IPLocationProvider(update_interval=0.01, lookup=lookup)
        provider.delegate = delegate
        provider.start_monitoring_significant_changes()

        assert entered.wait(5)
        provider.stop_monitoring_significant_changes()
        release.set()

        assert finished.wait(5)
        assert not delegate.event.wait(0.2)
        assert delegate.received == []
        assert delegate.failures == []

    def test_failed_poll_in_flight_when_stopped_not_delivered(self):
        delegate = Delegate()
        entered = threading.Event()
        release = threading.Event()

        def lookup():
            entered.set()
            release.wait(5)
            raise LocationError("offline", LocationErrorKind.NETWORK)

        provider = IPLocationProvider(update_interval=0.01, lookup=lookup)
        provider.delegate = delegate
        provider.start_monitoring_significant_changes()

        assert entered.wait(5)
        provider.stop_monitoring_significant_changes()
        release.set()

        assert not delegate.event.wait(0.3)
        assert delegate.failures == []
