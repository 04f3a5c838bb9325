import json
import os

from lib.errors import ValidationError

FILTERS = ('all', 'completed', 'remaining')


def load_routes(routes_file):
    """Load the route catalog.

    Each entry looks like {"route": ..., "map": ..., "length": km,
    "elevation": m, "leadIn": km}. Entries without a route name are skipped.

    Returns:
        list of route dicts, empty if the file is missing or unreadable
    """
    if not os.path.exists(routes_file):
        print(f"[CATALOG] Routes file not found: {routes_file}", flush=True)
        return []
    try:
        with open(routes_file, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError, IOError) as e:
        print(f"[ERROR] Error loading routes: {e}", flush=True)
        return []

    if not isinstance(data, list):
        print(f"[ERROR] Routes file must hold a list, got {type(data).__name__}", flush=True)
        return []

    return [item for item in data if isinstance(item, dict) and item.get('route')]


def filter_routes(routes, completed, filter_name='all', query=''):
    if filter_name not in FILTERS:
        raise ValidationError(f"Unknown filter '{filter_name}'")
    query = (query or '').strip().lower()

    result = []
    for route in routes:
        is_completed = route['route'] in completed
        if filter_name == 'completed' and not is_completed:
            continue
        if filter_name == 'remaining' and is_completed:
            continue
        if query and query not in route['route'].lower() and query not in str(route.get('map', '')).lower():
            continue
        result.append(route)
    return result


def group_by_map(routes, completed):
    """Group routes by map name, sorted by map, with per-map progress."""
    grouped = {}
    for route in routes:
        grouped.setdefault(route.get('map', ''), []).append(route)

    groups = []
    for map_name in sorted(grouped):
        routes_in_map = grouped[map_name]
        groups.append({
            'map': map_name,
            'completed': sum(1 for r in routes_in_map if r['route'] in completed),
            'total': len(routes_in_map),
            'routes': [
                dict(route, completed=route['route'] in completed)
                for route in routes_in_map
            ]
        })
    return groups


def calculate_stats(routes, completed):
    total = len(routes)
    done = len(completed)
    return {
        'total': total,
        'completed': done,
        'remaining': total - done,
        'percentage': round(done / total * 100) if total > 0 else 0
    }
