"""
Links Strava activities to routes.

A link stores one ActivityRecord per route (linking again overwrites) and
goes through the tracker's normal mutation pipeline, so it is on disk
before link() returns and reaches the gist with the next debounced sync.
"""
from lib.errors import AuthError, ValidationError
from lib.snapshot import now_ms
from lib.strava import build_activity_record, resolve_activity_ref


class ActivityLinker:

    def __init__(self, tracker, strava):
        self.tracker = tracker
        self.strava = strava

    def link(self, route_id, activity_ref):
        """Attach an activity to a route.

        Args:
            route_id: route to link
            activity_ref: bare activity id or a Strava activity URL

        Returns:
            The stored ActivityRecord

        Raises:
            InvalidReferenceError: activity_ref holds no activity id
            AuthError: no (or an expired) Strava token
            UpstreamError: Strava returned an error or unusable data
        """
        route_id = (route_id or '').strip()
        if not route_id:
            raise ValidationError("Route id is required")
        activity_id = resolve_activity_ref(activity_ref)

        token = self.tracker.strava_token
        if not token:
            raise AuthError("Connect Strava before linking activities")

        payload = self.strava.fetch_activity(activity_id, token)
        record = build_activity_record(payload, fetched_at=now_ms())

        def change(snapshot):
            snapshot.activities[route_id] = record
            return record

        self.tracker.mutate(change)
        print(f"[STRAVA] Linked activity {record.activity_id} to {route_id}", flush=True)
        return record

    def unlink(self, route_id):
        """Remove the activity linked to a route. Absent links are a no-op.

        Returns:
            True if a record was removed
        """
        route_id = (route_id or '').strip()

        def change(snapshot):
            return snapshot.activities.pop(route_id, None) is not None

        return self.tracker.mutate(change)
