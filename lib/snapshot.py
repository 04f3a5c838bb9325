"""
Completion-state data model.

A SyncSnapshot is the unit persisted both in the local cache file and in
the remote Gist. Its wire form is:

    {"completedRoutes": [...], "activities": {route: {...}}, "lastUpdated": ms}
"""
import math
import time
from dataclasses import dataclass, field
from enum import Enum


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"


# Python attribute -> stored key, for every optional activity attribute
ACTIVITY_FIELDS = {
    'name': 'name',
    'sport_type': 'sportType',
    'distance': 'distance',
    'moving_time': 'movingTime',
    'elapsed_time': 'elapsedTime',
    'total_elevation_gain': 'totalElevationGain',
    'average_speed': 'averageSpeed',
    'max_speed': 'maxSpeed',
    'average_watts': 'averageWatts',
    'weighted_average_watts': 'weightedAverageWatts',
    'max_watts': 'maxWatts',
    'kilojoules': 'kilojoules',
    'average_heartrate': 'averageHeartrate',
    'max_heartrate': 'maxHeartrate',
    'average_cadence': 'averageCadence',
    'start_date': 'startDate',
    'fetched_at': 'fetchedAt',
}


def now_ms():
    return int(time.time() * 1000)


@dataclass
class ActivityRecord:
    """One external activity linked to a route.

    Only activity_id is guaranteed; every other attribute is None when the
    upstream API did not return it.
    """
    activity_id: str
    name: str = None
    sport_type: str = None
    distance: float = None
    moving_time: int = None
    elapsed_time: int = None
    total_elevation_gain: float = None
    average_speed: float = None
    max_speed: float = None
    average_watts: float = None
    weighted_average_watts: float = None
    max_watts: float = None
    kilojoules: float = None
    average_heartrate: float = None
    max_heartrate: float = None
    average_cadence: float = None
    start_date: str = None
    fetched_at: int = None

    def to_dict(self):
        data = {'activityId': self.activity_id}
        for attr, key in ACTIVITY_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict) or data.get('activityId') in (None, ''):
            raise ValueError("activity record requires activityId")
        kwargs = {attr: data.get(key) for attr, key in ACTIVITY_FIELDS.items()}
        return cls(activity_id=str(data['activityId']), **kwargs)


@dataclass
class SyncSnapshot:
    completed: set = field(default_factory=set)
    activities: dict = field(default_factory=dict)
    last_updated: int = None

    def copy(self):
        # ActivityRecords are replaced, never mutated in place, so a shallow
        # copy of the mapping is enough to decouple the two snapshots.
        return SyncSnapshot(
            completed=set(self.completed),
            activities=dict(self.activities),
            last_updated=self.last_updated,
        )

    def to_dict(self):
        data = {
            'completedRoutes': sorted(self.completed),
            'activities': {
                route_id: record.to_dict()
                for route_id, record in sorted(self.activities.items())
            },
        }
        if self.last_updated is not None:
            data['lastUpdated'] = self.last_updated
        return data

    @classmethod
    def from_dict(cls, data):
        """Build a snapshot from its stored form.

        Raises:
            ValueError: if the payload does not have the snapshot shape
        """
        if not isinstance(data, dict):
            raise ValueError("snapshot must be a JSON object")

        completed = data.get('completedRoutes') or []
        if not isinstance(completed, list):
            raise ValueError("completedRoutes must be a list")

        raw_activities = data.get('activities') or {}
        if not isinstance(raw_activities, dict):
            raise ValueError("activities must be an object")

        activities = {}
        for route_id, record in raw_activities.items():
            try:
                activities[str(route_id)] = ActivityRecord.from_dict(record)
            except (ValueError, TypeError) as e:
                print(f"[SNAPSHOT] Skipping unreadable activity for {route_id}: {e}", flush=True)

        last_updated = data.get('lastUpdated')
        if not isinstance(last_updated, (int, float)) or not math.isfinite(last_updated):
            last_updated = None

        return cls(
            completed={str(route_id) for route_id in completed},
            activities=activities,
            last_updated=int(last_updated) if last_updated is not None else None,
        )
