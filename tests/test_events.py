"""Events API parsing and protected-range sync."""

import pytest
import requests

from trafficreplay.errors import FeedUnavailableError
from trafficreplay.ingestion import EventsClient, EventSync
from trafficreplay.ingestion.events_client import parse_event, parse_event_time

from conftest import FakeHttp, FakeResponse

API_BASE = 'https://events.example/api/v2/events/latest'


def _event(event_id, start, end, name='Event'):
    return {'id': event_id, 'name': name, 'start_time': start, 'end_time': end}


@pytest.mark.parametrize('value, expected', [
    ('2024-01-01T00:00:00Z', 1704067200),
    ('2024-01-01T00:00:00+00:00', 1704067200),
    ('2024-01-01T01:00:00+01:00', 1704067200),
    ('2024-01-01T00:00:00', 1704067200),
    ('not a date', None),
    ('', None),
    (None, None),
])
def test_parse_event_time(value, expected):
    assert parse_event_time(value) == expected


def test_parse_event_requires_id_and_ordered_window():
    assert parse_event(_event(42, '2024-01-01T00:00:00Z', '2024-01-01T02:00:00Z')) == {
        'event_id': '42',
        'name': 'Event',
        'start_ts': 1704067200,
        'end_ts': 1704074400,
    }
    assert parse_event(_event(None, '2024-01-01T00:00:00Z', '2024-01-01T02:00:00Z')) is None
    assert parse_event(_event(1, '2024-01-01T02:00:00Z', '2024-01-01T00:00:00Z')) is None
    assert parse_event(_event(1, 'bad', '2024-01-01T00:00:00Z')) is None
    assert parse_event('nope') is None


def test_fetch_events_reads_latest_n():
    http = FakeHttp({
        f'{API_BASE}/5': FakeResponse({'data': [
            _event(1, '2024-01-01T00:00:00Z', '2024-01-01T01:00:00Z'),
            {'id': 2},
        ]}),
    })
    client = EventsClient(api_base=API_BASE + '/', latest_num=5, timeout=1, http=http)

    events = client.fetch_events()
    assert [e['event_id'] for e in events] == ['1']


def test_fetch_events_without_data_list():
    http = FakeHttp({f'{API_BASE}/5': FakeResponse({'data': None})})
    assert EventsClient(api_base=API_BASE, latest_num=5, http=http).fetch_events() == []


@pytest.mark.parametrize('answer', [
    requests.exceptions.ConnectionError('down'),
    FakeResponse(status_code=500),
    FakeResponse(json_error=True),
])
def test_fetch_events_failures_raise(answer):
    http = FakeHttp({f'{API_BASE}/5': answer})
    with pytest.raises(FeedUnavailableError):
        EventsClient(api_base=API_BASE, latest_num=5, http=http).fetch_events()


def test_sync_is_rate_limited_unless_forced(store, clock):
    http = FakeHttp({f'{API_BASE}/5': FakeResponse({'data': [
        _event('ev', '2024-01-01T00:00:00Z', '2024-01-01T01:00:00Z', name='Fly-in'),
    ]})})
    sync = EventSync(EventsClient(api_base=API_BASE, latest_num=5, http=http), store, interval=3600, clock=clock)

    assert sync.sync() == 1
    assert sync.sync() == 0
    assert sync.sync(force=True) == 1
    assert len(http.calls) == 2

    ranges = store.protected_ranges()
    assert [(r.event_id, r.name, r.fetched_at) for r in ranges] == [('ev', 'Fly-in', int(clock.now))]


def test_failed_sync_retries_next_time(store, clock):
    http = FakeHttp({f'{API_BASE}/5': FakeResponse(status_code=503)})
    sync = EventSync(EventsClient(api_base=API_BASE, latest_num=5, http=http), store, interval=3600, clock=clock)

    with pytest.raises(FeedUnavailableError):
        sync.sync()

    http.routes[f'{API_BASE}/5'] = FakeResponse({'data': []})
    assert sync.sync() == 0
    assert len(http.calls) == 2
