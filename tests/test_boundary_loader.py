"""Boundary source fallback and stale-while-revalidate refresh."""

import threading

import pytest
import requests

from trafficreplay.airspace import AirspaceMatcher
from trafficreplay.errors import BoundaryFetchError

from conftest import FakeHttp, FakeResponse, feature_collection, polygon_feature, square

PRIMARY = 'https://primary.example/Boundaries.geojson'
MIRROR = 'https://mirror.example/Boundaries.geojson'


def _collection(label):
    return feature_collection(polygon_feature(label, square(0, 0, 10, 10)))


def test_falls_back_to_second_source(clock):
    http = FakeHttp({
        PRIMARY: FakeResponse(status_code=404),
        MIRROR: FakeResponse(_collection('MIRRORED')),
    })
    matcher = AirspaceMatcher(urls=(PRIMARY, MIRROR), http=http, clock=clock)

    assert matcher.load() == 1
    assert matcher.lookup(5, 5) == 'MIRRORED'
    assert matcher.stats['source'] == MIRROR
    assert [c['url'] for c in http.calls] == [PRIMARY, MIRROR]


@pytest.mark.parametrize('bad_answer', [
    requests.exceptions.Timeout('slow'),
    FakeResponse(json_error=True),
    FakeResponse({'type': 'FeatureCollection'}),
    FakeResponse(['not', 'an', 'object']),
])
def test_malformed_sources_are_skipped(bad_answer, clock):
    http = FakeHttp({PRIMARY: bad_answer, MIRROR: FakeResponse(_collection('OK'))})
    matcher = AirspaceMatcher(urls=(PRIMARY, MIRROR), http=http, clock=clock)

    matcher.load()
    assert matcher.lookup(5, 5) == 'OK'


def test_total_failure_keeps_previous_set(clock):
    http = FakeHttp({PRIMARY: FakeResponse(_collection('OLD'))})
    matcher = AirspaceMatcher(urls=(PRIMARY,), http=http, clock=clock)
    matcher.load()

    http.routes[PRIMARY] = FakeResponse(status_code=503)
    with pytest.raises(BoundaryFetchError, match='503'):
        matcher.load()

    assert matcher.lookup(5, 5) == 'OLD'
    assert matcher.stats['failures'] == 1


def test_ensure_fresh_reloads_only_when_stale(clock):
    http = FakeHttp({PRIMARY: FakeResponse(_collection('A'))})
    matcher = AirspaceMatcher(urls=(PRIMARY,), http=http, clock=clock)

    matcher.ensure_fresh(max_age=60)
    matcher.ensure_fresh(max_age=60)
    assert len(http.calls) == 1

    clock.advance(61)
    http.routes[PRIMARY] = FakeResponse(_collection('B'))
    matcher.ensure_fresh(max_age=60)
    assert len(http.calls) == 2
    assert matcher.lookup(5, 5) == 'B'


def test_stale_set_keeps_serving_when_refresh_fails(clock):
    http = FakeHttp({PRIMARY: FakeResponse(_collection('A'))})
    matcher = AirspaceMatcher(urls=(PRIMARY,), http=http, clock=clock)
    matcher.ensure_fresh(max_age=60)

    clock.advance(120)
    http.routes[PRIMARY] = requests.exceptions.ConnectionError('down')
    with pytest.raises(BoundaryFetchError):
        matcher.ensure_fresh(max_age=60)

    assert matcher.lookup(5, 5) == 'A'


def test_empty_matcher_without_sources_raises(clock):
    matcher = AirspaceMatcher(urls=(), http=FakeHttp(), clock=clock)
    with pytest.raises(BoundaryFetchError):
        matcher.ensure_fresh()
    assert matcher.lookup(5, 5) is None


def test_replace_rejects_non_collection(clock):
    matcher = AirspaceMatcher.from_geojson(_collection('KEEP'), clock=clock)
    with pytest.raises(BoundaryFetchError):
        matcher.replace({'features': 'nope'})
    assert matcher.lookup(5, 5) == 'KEEP'


def test_concurrent_lookups_see_a_whole_set(clock):
    matcher = AirspaceMatcher.from_geojson(_collection('A'), clock=clock)
    seen = set()
    stop = threading.Event()

    def reader():
        while not stop.is_set():
            seen.add(matcher.lookup(5, 5))

    threads = [threading.Thread(target=reader) for _ in range(4)]
    for t in threads:
        t.start()
    for i in range(50):
        matcher.replace(_collection('B' if i % 2 else 'A'))
    stop.set()
    for t in threads:
        t.join()

    assert seen <= {'A', 'B'}
