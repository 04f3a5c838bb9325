import json
import re

import pytest
import requests

from lib.gist import GistClient
from lib.local_cache import LocalCache
from lib.strava import StravaClient
from lib.tracker import Tracker

GITHUB_API = "https://api.github.test"
STRAVA_API = "https://strava.test/api/v3"
STRAVA_OAUTH = "https://strava.test/oauth/token"
GOOD_TOKEN = "good-token"
GIST_FILENAME = "zwift_routes.json"

DEBOUNCE = 1.0
SYNCED_DISPLAY = 2.0


class FakeResponse:
    def __init__(self, status_code, body=None):
        self.status_code = status_code
        self._body = body

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body


class FakeTimer:
    def __init__(self, registry, interval, function):
        self.registry = registry
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.cancelled or self.fired:
            return
        self.fired = True
        self.function()


class TimerRegistry:
    """threading.Timer stand-in: timers only fire when a test says so."""

    def __init__(self):
        self.timers = []

    def __call__(self, interval, function):
        timer = FakeTimer(self, interval, function)
        self.timers.append(timer)
        return timer

    def live(self, interval=None):
        return [
            t for t in self.timers
            if t.started and not t.cancelled and not t.fired
            and (interval is None or t.interval == interval)
        ]

    def fire(self, interval=DEBOUNCE):
        fired = 0
        for timer in self.live(interval):
            timer.fire()
            fired += 1
        return fired


class FakeGitHub:
    """In-memory GitHub gist API reachable through GistClient's session."""

    def __init__(self):
        self.gists = {}
        self.calls = []
        self.offline = False
        self.force_status = None
        self._next_id = 1

    def add_gist(self, gist_id, data):
        self.gists[gist_id] = {GIST_FILENAME: {'content': json.dumps(data)}}

    def stored(self, gist_id):
        return json.loads(self.gists[gist_id][GIST_FILENAME]['content'])

    def writes(self):
        return [c for c in self.calls if c[0] in ('POST', 'PATCH')]

    def request(self, method, url, headers=None, json=None, timeout=None):
        path = url[len(GITHUB_API):]
        self.calls.append((method, path, json))
        headers = headers or {}
        authorized = headers.get('Authorization') == f'token {GOOD_TOKEN}'

        if self.offline:
            raise requests.ConnectionError("network down")
        if self.force_status:
            return FakeResponse(self.force_status, {'message': 'Server Error'})

        if path == '/user':
            if authorized:
                return FakeResponse(200, {'login': 'rider'})
            return FakeResponse(401, {'message': 'Bad credentials'})

        if path == '/gists' and method == 'POST':
            if not authorized:
                return FakeResponse(401, {'message': 'Requires authentication'})
            gist_id = f"gist{self._next_id}"
            self._next_id += 1
            self.gists[gist_id] = dict(json['files'])
            return FakeResponse(201, {'id': gist_id, 'files': self.gists[gist_id]})

        match = re.fullmatch(r'/gists/([^/]+)', path)
        if match:
            gist_id = match.group(1)
            if gist_id not in self.gists:
                return FakeResponse(404, {'message': 'Not Found'})
            if method == 'GET':
                return FakeResponse(200, {'id': gist_id, 'files': self.gists[gist_id]})
            if method == 'PATCH':
                if not authorized:
                    return FakeResponse(401, {'message': 'Requires authentication'})
                self.gists[gist_id].update(json['files'])
                return FakeResponse(200, {'id': gist_id, 'files': self.gists[gist_id]})

        return FakeResponse(404, {'message': 'Not Found'})


class FakeStrava:
    def __init__(self):
        self.activities = {}
        self.calls = []
        self.token_response = FakeResponse(200, {
            'token_type': 'Bearer',
            'access_token': 'strava-access',
            'refresh_token': 'strava-refresh',
            'expires_at': 1900000000,
            'athlete': {'id': 1},
        })

    def fail_token_exchange(self, status_code, body):
        self.token_response = FakeResponse(status_code, body)

    def get(self, url, headers=None, timeout=None):
        self.calls.append(('GET', url, headers))
        if (headers or {}).get('Authorization') != 'Bearer strava-good':
            return FakeResponse(401, {'message': 'Authorization Error'})
        activity_id = url.rsplit('/', 1)[-1]
        if activity_id not in self.activities:
            return FakeResponse(404, {'message': 'Record Not Found'})
        return FakeResponse(200, self.activities[activity_id])

    def post(self, url, json=None, timeout=None):
        self.calls.append(('POST', url, json))
        return self.token_response


@pytest.fixture
def timers():
    return TimerRegistry()


@pytest.fixture
def cache(tmp_path):
    return LocalCache(str(tmp_path / "state.json"), str(tmp_path / "gist_id.json"))


@pytest.fixture
def github():
    return FakeGitHub()


@pytest.fixture
def gist_client(github):
    return GistClient(GITHUB_API, GIST_FILENAME, "Zwift Route Tracker - Completed Routes",
                      public=True, session=github)


@pytest.fixture
def tracker(cache, gist_client, timers):
    return Tracker(cache, gist_client, debounce_seconds=DEBOUNCE,
                   synced_display_seconds=SYNCED_DISPLAY, timer_factory=timers)


@pytest.fixture
def strava_api():
    fake = FakeStrava()
    fake.activities['12345'] = {
        'id': 12345,
        'name': 'Tempus Fugit x2',
        'sport_type': 'VirtualRide',
        'type': 'VirtualRide',
        'distance': 34600.0,
        'moving_time': 3540,
        'elapsed_time': 3600,
        'total_elevation_gain': 32.0,
        'average_speed': 9.77,
        'max_speed': 14.2,
        'average_watts': 212.4,
        'start_date': '2026-03-01T18:30:00Z',
    }
    return fake


@pytest.fixture
def strava(strava_api):
    return StravaClient(STRAVA_API, STRAVA_OAUTH, cache_ttl=3600, session=strava_api)
