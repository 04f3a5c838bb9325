"""
Strava API access: activity details for linking, and the OAuth
authorization-code exchange performed server-side so the client secret
never reaches the browser.
"""
import re
import time

import requests

from lib.errors import AuthError, InvalidReferenceError, UpstreamError
from lib.snapshot import ACTIVITY_FIELDS, ActivityRecord

ACTIVITY_URL_PATTERN = re.compile(r'/activities/(\d+)')

TOKEN_FIELDS = ('access_token', 'refresh_token', 'expires_at')


def resolve_activity_ref(activity_ref):
    """Turn a bare id or an activity URL into a canonical activity id.

    Examples:
        "12345" -> "12345"
        "https://www.strava.com/activities/12345/overview" -> "12345"

    Raises:
        InvalidReferenceError: nothing usable in the reference
    """
    ref = (activity_ref or '').strip()
    if not ref:
        raise InvalidReferenceError("Activity reference is empty")
    if ref.isdigit():
        return ref
    match = ACTIVITY_URL_PATTERN.search(ref)
    if match:
        return match.group(1)
    raise InvalidReferenceError(f"Could not find an activity id in '{ref}'")


def build_activity_record(payload, fetched_at):
    """Map a Strava activity detail payload to an ActivityRecord."""
    values = {}
    for attr in ACTIVITY_FIELDS:
        if attr == 'fetched_at':
            continue
        values[attr] = payload.get(attr)
    if values['sport_type'] is None:
        values['sport_type'] = payload.get('type')
    return ActivityRecord(
        activity_id=str(payload['id']),
        fetched_at=fetched_at,
        **values
    )


class StravaClient:

    def __init__(self, api_url, oauth_url, cache_ttl=3600, session=None, timeout=15, clock=time.time):
        self.api_url = api_url.rstrip('/')
        self.oauth_url = oauth_url
        self.cache_ttl = cache_ttl
        self.session = session or requests.Session()
        self.timeout = timeout
        self.clock = clock
        # activity id -> (fetched at epoch seconds, payload)
        self._cache = {}

    def fetch_activity(self, activity_id, token):
        """Fetch one activity's details, served from cache while fresh.

        Historical activities do not change, so a cached payload younger
        than cache_ttl is returned without a network call.
        """
        now = self.clock()
        cached = self._cache.get(activity_id)
        if cached and now - cached[0] < self.cache_ttl:
            return cached[1]

        if not token:
            raise AuthError("Connect Strava before linking activities")

        try:
            response = self.session.get(
                f"{self.api_url}/activities/{activity_id}",
                headers={'Authorization': f'Bearer {token}'},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise UpstreamError(f"Strava request failed: {e}") from e

        if response.status_code == 401:
            raise AuthError("Strava token is invalid or expired", status_code=401)
        if response.status_code == 404:
            raise UpstreamError(f"Activity {activity_id} not found", status_code=404)
        if not response.ok:
            raise UpstreamError(f"Strava returned HTTP {response.status_code}",
                                status_code=response.status_code)
        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError("Strava returned a non-JSON response") from e
        if not isinstance(payload, dict) or 'id' not in payload:
            raise UpstreamError("Strava response has no activity id")

        self._cache[activity_id] = (now, payload)
        print(f"[STRAVA] Fetched activity {activity_id}", flush=True)
        return payload

    def exchange_code(self, code, client_id, redirect_uri, client_secret):
        """Exchange an OAuth authorization code for tokens.

        Returns:
            (status_code, body) ready to send back to the client. The body
            only ever carries the three token fields or an error message.
        """
        try:
            response = self.session.post(self.oauth_url, json={
                'client_id': client_id,
                'client_secret': client_secret,
                'code': code,
                'grant_type': 'authorization_code',
                'redirect_uri': redirect_uri
            }, timeout=self.timeout)
        except requests.RequestException as e:
            print(f"[STRAVA] Error exchanging token: {e}", flush=True)
            return 500, {'error': 'Internal server error'}

        try:
            data = response.json()
        except ValueError:
            data = {}

        if not response.ok:
            message = data.get('message') if isinstance(data, dict) else None
            return response.status_code, {'error': message or 'Failed to exchange token'}

        return 200, {field: data.get(field) for field in TOKEN_FIELDS}
