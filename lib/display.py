"""
Human-readable summaries of linked activities for the route list.
"""
from datetime import datetime

import pytz


def format_time(seconds_input):
    hours, remainder = divmod(int(seconds_input), 3600)
    minutes, secs_component = divmod(remainder, 60)
    return f"{hours:d}:{minutes:02d}:{secs_component:02d}"


def format_start_date(start_date, tz):
    """Convert a Strava ISO-8601 UTC start date to a local display string."""
    if not start_date:
        return None
    try:
        parsed = datetime.strptime(start_date, "%Y-%m-%dT%H:%M:%SZ")
    except ValueError:
        return None
    return pytz.UTC.localize(parsed).astimezone(tz).strftime('%b %d %Y, %H:%M')


def summarize_activity(record, timezone_name):
    """Build the display fields shown next to a linked route.

    Missing upstream fields stay None rather than being guessed.
    """
    tz = pytz.timezone(timezone_name)
    moving = record.moving_time
    return {
        'activity_id': record.activity_id,
        'url': f"https://www.strava.com/activities/{record.activity_id}",
        'name': record.name,
        'distance_km': round(record.distance / 1000, 2) if record.distance is not None else None,
        'elevation_m': round(record.total_elevation_gain) if record.total_elevation_gain is not None else None,
        'moving_time_str': format_time(moving) if moving is not None else None,
        'avg_speed_kmh': round(record.average_speed * 3.6, 1) if record.average_speed is not None else None,
        'avg_watts': round(record.average_watts) if record.average_watts is not None else None,
        'avg_heartrate': round(record.average_heartrate) if record.average_heartrate is not None else None,
        'start_local_str': format_start_date(record.start_date, tz),
    }
