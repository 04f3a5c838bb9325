"""
GitHub Gist client used as the remote document store.

The whole snapshot lives as one JSON file inside a single gist. Every write
replaces the file; there is no partial update and no concurrency token, so
the last writer wins.
"""
import json

import requests

from lib.errors import AuthError, NotFoundError, TransientError
from lib.snapshot import SyncSnapshot


class GistClient:

    def __init__(self, api_url, filename, description, public=True, session=None, timeout=15):
        self.api_url = api_url.rstrip('/')
        self.filename = filename
        self.description = description
        self.public = public
        self.session = session or requests.Session()
        self.timeout = timeout

    def _headers(self, token=None):
        headers = {'Accept': 'application/vnd.github.v3+json'}
        if token:
            headers['Authorization'] = f'token {token}'
        return headers

    def _request(self, method, path, token=None, payload=None):
        url = f"{self.api_url}{path}"
        try:
            response = self.session.request(
                method, url,
                headers=self._headers(token),
                json=payload,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise TransientError(f"GitHub request failed: {e}") from e

        if response.status_code == 404:
            raise NotFoundError("Gist not found", status_code=404)
        if response.status_code in (401, 403):
            raise AuthError(_error_message(response, "GitHub rejected the token"),
                            status_code=response.status_code)
        if not response.ok:
            raise TransientError(_error_message(response, f"GitHub returned HTTP {response.status_code}"),
                                 status_code=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise TransientError("GitHub returned a non-JSON response") from e

    def _files(self, snapshot):
        return {
            self.filename: {
                'content': json.dumps(snapshot.to_dict(), indent=2)
            }
        }

    def verify_token(self, token):
        """Check a GitHub token with a lightweight "who am I" call.

        Returns:
            The authenticated user's profile dict

        Raises:
            AuthError: token is invalid or expired
            TransientError: GitHub could not be reached
        """
        try:
            return self._request('GET', '/user', token=token)
        except NotFoundError as e:
            raise AuthError("Invalid token", status_code=404) from e

    def fetch_remote(self, gist_id, token=None):
        """Read the tracker snapshot stored in a gist.

        Returns None when the gist exists but holds no usable tracker file.
        Raises NotFoundError when the gist itself is gone.
        """
        gist = self._request('GET', f"/gists/{gist_id}", token=token)
        file_entry = (gist.get('files') or {}).get(self.filename)
        if not file_entry or not file_entry.get('content'):
            print(f"[GIST] Gist {gist_id} has no {self.filename} file yet", flush=True)
            return None
        try:
            return SyncSnapshot.from_dict(json.loads(file_entry['content']))
        except (ValueError, TypeError) as e:
            print(f"[GIST] Ignoring unreadable content in gist {gist_id}: {e}", flush=True)
            return None

    def create_remote(self, snapshot, token):
        """Create a new gist holding the snapshot and return its id."""
        gist = self._request('POST', '/gists', token=token, payload={
            'description': self.description,
            'public': self.public,
            'files': self._files(snapshot)
        })
        gist_id = gist.get('id')
        if not gist_id:
            raise TransientError("GitHub did not return a gist id")
        print(f"[GIST] Created new gist: {gist_id}", flush=True)
        return gist_id

    def update_remote(self, gist_id, snapshot, token):
        self._request('PATCH', f"/gists/{gist_id}", token=token, payload={
            'files': self._files(snapshot)
        })

    def save(self, gist_id, snapshot, token):
        """Write the snapshot, creating a gist when there is none to update.

        A stale handle (the gist was deleted upstream) falls back to creating
        a fresh gist so the write is never silently dropped.

        Returns:
            The gist id that now holds the snapshot
        """
        if gist_id:
            try:
                self.update_remote(gist_id, snapshot, token)
                return gist_id
            except NotFoundError:
                print(f"[GIST] Gist {gist_id} not found, creating a new one", flush=True)
        return self.create_remote(snapshot, token)


def _error_message(response, default):
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict) and body.get('message'):
        return body['message']
    return default
