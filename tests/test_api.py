"""HTTP surface, exercised through the Flask test client."""

import pytest

from trafficreplay.airspace import AirspaceMatcher
from trafficreplay.app import create_app
from trafficreplay.ingestion import EventsClient, FeedClient

from conftest import FakeHttp, FakeResponse, controller, feature_collection, pilot, polygon_feature, square

FEED_URL = 'https://feed.example/data.json'
EVENTS_BASE = 'https://events.example/latest'

BOUNDARIES = feature_collection(polygon_feature('EGTT', square(-2, 50, 2, 54)))


@pytest.fixture
def feed_http():
    return FakeHttp({FEED_URL: FakeResponse({
        'pilots': [],
        'controllers': [
            {'callsign': 'EGLL_N_TWR', 'frequency': '118.500', 'facility': 4},
            {'callsign': 'LON_S_CTR', 'frequency': '129.425', 'facility': 6},
        ],
    })})


@pytest.fixture
def events_http():
    return FakeHttp({f'{EVENTS_BASE}/150': FakeResponse({'data': [
        {'id': 9, 'name': 'Heathrow Rush', 'start_time': '1970-01-01T00:01:00Z', 'end_time': '1970-01-01T00:03:00Z'},
    ]})})


@pytest.fixture
def app(session_factory, feed_http, events_http):
    app = create_app(
        start_ingestion=False,
        session_factory=session_factory,
        matcher=AirspaceMatcher.from_geojson(BOUNDARIES),
        feed_client=FeedClient(url=FEED_URL, http=feed_http),
        events_client=EventsClient(api_base=EVENTS_BASE, latest_num=150, http=events_http),
    )
    app.config['TESTING'] = True

    store = app.config['SNAPSHOT_STORE']
    for ts in (100, 115, 130, 145):
        store.insert_batch(
            ts,
            [
                pilot('BAW1', lat=51.5, lon=-0.5, altitude=ts * 100, airspace='EGTT',
                      departure='EGLL', destination='KJFK'),
                pilot('AFR2', lat=48.0, lon=2.0, altitude=3000, airspace='LFFF',
                      departure='LFPG', destination='EGLL'),
            ],
            [controller('EGLL_N_TWR', frequency='118.500')],
        )
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def test_health(client):
    assert client.get('/health').get_json() == {'status': 'ok'}


def test_meta(client):
    body = client.get('/api/meta').get_json()
    assert body['minTs'] == 100
    assert body['maxTs'] == 145
    assert body['rows'] == 8
    assert body['maxRangeSeconds'] == 86400


def test_preload_snapshots(client):
    response = client.get('/api/preload-snapshots?since=100&until=145&step=15&window=7&maxSourceAge=30')
    assert response.status_code == 200
    body = response.get_json()

    assert body['timestamps'] == [100, 115, 130, 145]
    assert body['sourceTsByBucket'] == {'100': 100, '115': 115, '130': 130, '145': 145}
    assert sorted(r['callsign'] for r in body['rowsByTs']['115']) == ['AFR2', 'BAW1']
    assert body['atcRowsByTs']['100'] == [{
        'callsign': 'EGLL_N_TWR',
        'frequency': '118.500',
        'facility': None,
        'lat': None,
        'lon': None,
        'role': 'TWR',
        'sector': 'EGLL',
    }]


def test_preload_snapshots_with_filters(client):
    body = client.get(
        '/api/preload-snapshots?since=100&until=145&step=15&window=0&maxSourceAge=0'
        '&airspaces=egtt&minAltitude=12000'
    ).get_json()

    assert body['airspaces'] == ['EGTT']
    assert body['minAltitude'] == 12000
    assert {k: [r['callsign'] for r in rows] for k, rows in body['rowsByTs'].items()} == {
        '100': [], '115': [], '130': ['BAW1'], '145': ['BAW1'],
    }


def test_preload_off_grid_bucket_with_zero_age(client):
    body = client.get('/api/preload-snapshots?since=107&until=107&step=15&window=7&maxSourceAge=0').get_json()
    assert body['timestamps'] == [107]
    assert body['rowsByTs'] == {'107': []}
    assert body['sourceTsByBucket'] == {}


@pytest.mark.parametrize('query, expected', [
    ('since=100&until=145&step=0', {'error': 'step must be positive', 'step': 0}),
    ('since=100&until=145&window=-1', {'error': 'window must not be negative', 'window': -1}),
    ('since=100&until=145&maxSourceAge=-5', {'error': 'maxSourceAge must not be negative', 'maxSourceAge': -5}),
    ('since=200&until=100', {'error': 'until must be >= since', 'since': 200, 'until': 100}),
    ('since=abc&until=100', {'error': "invalid 'since' parameter", 'received': 'abc'}),
    ('since=0&until=86400&step=1', {
        'error': 'range too large', 'maxBuckets': 10000, 'requestedBuckets': 86401, 'step': 1,
    }),
])
def test_preload_rejects_bad_parameters(client, query, expected):
    response = client.get(f'/api/preload-snapshots?{query}')
    assert response.status_code == 400
    assert response.get_json() == expected


def test_range_over_a_day_reports_limits(client):
    response = client.get('/api/callsigns?since=0&until=90000')
    assert response.status_code == 400
    assert response.get_json() == {
        'error': 'replay range exceeds maximum span',
        'maxRangeSeconds': 86400,
        'replayRangeSeconds': 90000,
        'since': 0,
        'until': 90000,
    }


@pytest.mark.parametrize('path', [
    '/api/snapshot?ts=0&window=999999999999',
    '/api/atc-snapshot?ts=0&window=999999999999',
    '/api/preload-snapshots?since=100&until=145&window=999999999999',
])
def test_window_over_max_range_is_rejected(client, path):
    response = client.get(path)
    assert response.status_code == 400
    assert response.get_json() == {
        'error': 'window exceeds maximum',
        'window': 999999999999,
        'maxRangeSeconds': 86400,
    }


def test_snapshot_with_airport_filter(client):
    body = client.get('/api/snapshot?ts=115&window=0&airport=LFPG').get_json()
    assert [r['callsign'] for r in body['rows']] == ['AFR2']
    assert body['rows'][0]['ts'] == 115


def test_atc_snapshot(client):
    body = client.get('/api/atc-snapshot?ts=100&window=0').get_json()
    assert [(r['callsign'], r['role']) for r in body['rows']] == [('EGLL_N_TWR', 'TWR')]


def test_callsigns(client):
    body = client.get('/api/callsigns?since=0&until=200').get_json()
    assert [r['callsign'] for r in body['rows']] == ['AFR2', 'BAW1']


def test_track_downsampled(client):
    body = client.get('/api/track/baw1?since=100&until=145&step=30').get_json()
    assert body['callsign'] == 'BAW1'
    assert [p['ts'] for p in body['rows']] == [100, 130]


def test_airspace_and_airport_catalogs(client):
    airspaces = client.get('/api/airspaces?since=0&until=200').get_json()
    assert airspaces['rows'] == [{'value': 'EGTT', 'count': 4}, {'value': 'LFFF', 'count': 4}]

    airports = client.get('/api/airports?since=0&until=200').get_json()
    assert airports['rows'][0] == {'value': 'EGLL', 'count': 8}


def test_airspace_geojson_passthrough(client):
    assert client.get('/api/airspace').get_json() == BOUNDARIES


def test_airspace_geojson_unavailable(session_factory, feed_http):
    app = create_app(
        start_ingestion=False,
        session_factory=session_factory,
        matcher=AirspaceMatcher(urls=(), http=FakeHttp()),
        feed_client=FeedClient(url=FEED_URL, http=feed_http),
        events_client=EventsClient(api_base=EVENTS_BASE, http=FakeHttp()),
    )
    response = app.test_client().get('/api/airspace')
    assert response.status_code == 502
    assert response.get_json() == {'error': 'airspace fetch failed'}


def test_atc_online(client):
    body = client.get('/api/atc-online').get_json()
    assert body['source'] == 'live'
    assert [(p['callsign'], p['role'], p['sector']) for p in body['positions']] == [
        ('EGLL_N_TWR', 'TWR', 'EGLL'),
        ('LON_S_CTR', 'CTR', 'LON'),
    ]


def test_events_refresh_and_list(client, events_http):
    assert client.get('/api/events?includeWithoutData=1').get_json()['rows'] == []

    body = client.get('/api/events?refresh=1&includeWithoutData=1').get_json()
    assert len(events_http.calls) == 1
    assert [(r['event_id'], r['start_ts'], r['end_ts']) for r in body['rows']] == [('9', 60, 180)]

    # Window 60..180 holds the stored samples
    assert len(client.get('/api/events').get_json()['rows']) == 1


def test_status(client):
    body = client.get('/api/status').get_json()
    assert body['database']['connected'] is True
    assert body['database']['range']['rows'] == 8
    assert body['ingestion']['cycle_count'] == 0
    assert body['airspace']['features'] == 1


def test_unknown_route_is_json_404(client):
    response = client.get('/api/nope')
    assert response.status_code == 404
    assert response.get_json() == {'error': 'Not found'}
