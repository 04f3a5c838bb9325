"""
Tracker session: the one object that owns the completion state.

Holds the in-memory snapshot, the credentials (kept in memory only, never
written to disk), the remote gist handle and the sync scheduler. Every
mutation follows the same pipeline: change the snapshot, write the local
cache before returning, then notify the scheduler.
"""
import threading

from lib.errors import AuthError, ValidationError
from lib.reconcile import (
    OUTCOME_AUTH_ERROR, OUTCOME_ERROR, OUTCOME_MERGED, fetch_for_reconcile, merge_snapshots,
)
from lib.snapshot import SyncSnapshot
from lib.sync import SyncScheduler


class Tracker:

    def __init__(self, cache, gist_client, debounce_seconds=1.0, synced_display_seconds=2.0,
                 timer_factory=threading.Timer):
        self.cache = cache
        self.gist_client = gist_client
        self.snapshot = SyncSnapshot()
        self.gist_id = None
        self.github_token = None
        self.github_user = None
        self.strava_token = None
        self.last_reconcile = None
        self._lock = threading.RLock()

        self.scheduler = SyncScheduler(
            get_snapshot=self.current_snapshot,
            write_remote=self.push_remote,
            delay=debounce_seconds,
            synced_display=synced_display_seconds,
            is_enabled=lambda: self.is_authenticated,
            timer_factory=timer_factory
        )

    @property
    def is_authenticated(self):
        return bool(self.github_token)

    def current_snapshot(self):
        with self._lock:
            return self.snapshot.copy()

    # -------------------------------------------------------------------------
    # Load and reconciliation
    # -------------------------------------------------------------------------

    def load(self, background=True):
        """Restore the local snapshot, then reconcile with the gist.

        The local read is synchronous so the tracker is usable at once; the
        remote read runs on a daemon thread unless background is False.
        """
        local = self.cache.read_local()
        with self._lock:
            self.snapshot = local or SyncSnapshot()
            self.gist_id = self.cache.read_gist_id()

        if not self.gist_id:
            return None
        if background:
            thread = threading.Thread(target=self.reconcile_remote, daemon=True)
            thread.start()
            return thread
        return self.reconcile_remote()

    def reconcile_remote(self):
        """Merge the gist into the current state.

        Only the remote side is merged in, so edits made while the fetch
        was running survive.

        Returns:
            The reconcile outcome string
        """
        with self._lock:
            gist_id = self.gist_id
            token = self.github_token

        remote, outcome = fetch_for_reconcile(self.gist_client, gist_id, token=token)

        with self._lock:
            if gist_id == self.gist_id and outcome == OUTCOME_MERGED:
                self.snapshot = merge_snapshots(self.snapshot, remote)
                self.cache.write_local(self.snapshot)
                print(f"[RECONCILE] Merged {len(self.snapshot.completed)} completed routes, "
                      f"{len(self.snapshot.activities)} linked activities", flush=True)
            self.last_reconcile = outcome

        if outcome in (OUTCOME_ERROR, OUTCOME_AUTH_ERROR):
            self.scheduler.report_error("Could not load remote data, using local copy")
        return outcome

    def set_gist_id(self, gist_id, background=True):
        gist_id = (gist_id or '').strip()
        if not gist_id:
            raise ValidationError("Please enter a Gist ID")
        with self._lock:
            self.gist_id = gist_id
        self.cache.write_gist_id(gist_id)
        print(f"[SYNC] Using gist {gist_id}", flush=True)
        if background:
            thread = threading.Thread(target=self.reconcile_remote, daemon=True)
            thread.start()
            return thread
        return self.reconcile_remote()

    # -------------------------------------------------------------------------
    # Credentials
    # -------------------------------------------------------------------------

    def login(self, token):
        """Verify a GitHub token and keep it for this process only.

        Raises:
            ValidationError: empty token
            AuthError: GitHub rejected the token
            TransientError: GitHub could not be reached
        """
        token = (token or '').strip()
        if not token:
            raise ValidationError("Please enter a GitHub token")
        user = self.gist_client.verify_token(token)
        with self._lock:
            self.github_token = token
            self.github_user = user.get('login') if isinstance(user, dict) else None
        print(f"[SYNC] Authenticated as {self.github_user or 'unknown user'}", flush=True)
        return self.github_user

    def logout(self):
        self.scheduler.cancel()
        with self._lock:
            self.github_token = None
            self.github_user = None

    def set_strava_token(self, token):
        token = (token or '').strip()
        if not token:
            raise ValidationError("Strava access token is required")
        with self._lock:
            self.strava_token = token

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def mutate(self, change):
        """Apply change(snapshot) and run the persist/sync pipeline.

        The local cache is written before this returns, whatever happens to
        the remote sync later.
        """
        with self._lock:
            result = change(self.snapshot)
            self.cache.write_local(self.snapshot)
        self.scheduler.notify_mutation()
        return result

    def set_route_completed(self, route_id, completed):
        """Mark a route complete or not. Without a GitHub token the change
        is kept locally and never queued for the gist."""
        route_id = (route_id or '').strip()
        if not route_id:
            raise ValidationError("Route id is required")

        def change(snapshot):
            if completed:
                snapshot.completed.add(route_id)
            else:
                snapshot.completed.discard(route_id)
                # An unchecked route keeps no linked activity
                snapshot.activities.pop(route_id, None)
            return completed

        return self.mutate(change)

    def toggle_route(self, route_id):
        route_id = (route_id or '').strip()
        with self._lock:
            completed = route_id not in self.snapshot.completed
        return self.set_route_completed(route_id, completed)

    # -------------------------------------------------------------------------
    # Remote write
    # -------------------------------------------------------------------------

    def push_remote(self, snapshot):
        """Write a snapshot to the gist, adopting a new handle if one is created."""
        with self._lock:
            gist_id = self.gist_id
            token = self.github_token
        if not token:
            raise AuthError("Not authenticated")

        new_gist_id = self.gist_client.save(gist_id, snapshot, token)
        if new_gist_id != gist_id:
            with self._lock:
                self.gist_id = new_gist_id
            self.cache.write_gist_id(new_gist_id)
        print(f"[SYNC] Saved {len(snapshot.completed)} completed routes to gist {new_gist_id}", flush=True)

    def state(self):
        with self._lock:
            return {
                'completed_routes': sorted(self.snapshot.completed),
                'activities': {
                    route_id: record.to_dict()
                    for route_id, record in sorted(self.snapshot.activities.items())
                },
                'last_updated': self.snapshot.last_updated,
                'gist_id': self.gist_id,
                'authenticated': self.is_authenticated,
                'github_user': self.github_user,
                'strava_connected': bool(self.strava_token),
                'sync_status': self.scheduler.status.value,
                'sync_error': self.scheduler.last_error,
            }
