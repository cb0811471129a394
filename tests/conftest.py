"""
Shared fixtures: a throwaway SQLite database per test and fake HTTP
sessions for the feed, events and boundary clients.
"""

import os

# Keep the module-level application engine off the working directory
os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')

import pytest
import requests

from trafficreplay.models import make_session_factory, PilotSample, ControllerSample
from trafficreplay.replay import SnapshotResolver
from trafficreplay.storage import SnapshotStore


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, payload=None, status_code=200, json_error=False):
        self.payload = payload
        self.status_code = status_code
        self.json_error = json_error

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self.json_error:
            raise ValueError('Expecting value: line 1 column 1 (char 0)')
        return self.payload

    def raise_for_status(self):
        if not self.ok:
            raise requests.exceptions.HTTPError(f'{self.status_code} Error', response=self)


class FakeHttp:
    """
    Records GETs and answers from a per-URL route table.

    A route value may be a FakeResponse, an exception instance (raised),
    or a callable returning either. Unrouted URLs get `default`.
    """

    def __init__(self, routes=None, default=None):
        self.routes = dict(routes or {})
        self.default = default
        self.calls = []

    def get(self, url, headers=None, timeout=None, **kwargs):
        self.calls.append({'url': url, 'headers': headers, 'timeout': timeout})
        answer = self.routes.get(url, self.default)
        if callable(answer) and not isinstance(answer, FakeResponse):
            answer = answer()
        if isinstance(answer, Exception):
            raise answer
        if answer is None:
            raise requests.exceptions.ConnectionError(f'no route for {url}')
        return answer


class FakeClock:
    """Settable clock for anything that takes a `clock` callable."""

    def __init__(self, now=1_700_000_000.0):
        self.now = float(now)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def square(west, south, east, north):
    """Closed GeoJSON ring for an axis-aligned box."""
    return [[west, south], [east, south], [east, north], [west, north], [west, south]]


def polygon_feature(label, *rings, use_id=True):
    feature = {
        'type': 'Feature',
        'properties': {} if use_id else {'id': label},
        'geometry': {'type': 'Polygon', 'coordinates': [list(r) for r in rings]},
    }
    if use_id:
        feature['id'] = label
    return feature


def feature_collection(*features):
    return {'type': 'FeatureCollection', 'features': list(features)}


def pilot(callsign, lat=10.0, lon=10.0, **kwargs):
    return PilotSample(callsign=callsign, latitude=lat, longitude=lon, **kwargs)


def controller(callsign, **kwargs):
    return ControllerSample(callsign=callsign, **kwargs)


@pytest.fixture
def session_factory(tmp_path):
    return make_session_factory(f'sqlite:///{tmp_path / "replay.db"}')


@pytest.fixture
def store(session_factory):
    return SnapshotStore(session_factory)


@pytest.fixture
def resolver(store):
    return SnapshotResolver(store)


@pytest.fixture
def clock():
    return FakeClock()
