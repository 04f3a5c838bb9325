from flask import Flask, request, jsonify
import threading

import config
from lib.catalog import load_routes, filter_routes, group_by_map, calculate_stats
from lib.display import summarize_activity
from lib.errors import (
    TrackerError, ValidationError, AuthError, NotFoundError, TransientError, UpstreamError
)
from lib.gist import GistClient
from lib.linker import ActivityLinker
from lib.local_cache import LocalCache
from lib.strava import StravaClient
from lib.tracker import Tracker

app = Flask(__name__)
app.secret_key = config.FLASK_SECRET_KEY

# Single tracker per server: one user's completion state, like one browser tab
_services = {}
_services_lock = threading.Lock()


def init_services(tracker=None, strava=None, routes=None, load=True):
    """Build (or inject) the tracker, Strava client and route catalog."""
    if tracker is None:
        cache = LocalCache(config.TRACKER_STATE_FILE, config.TRACKER_GIST_ID_FILE)
        gist_client = GistClient(
            config.GITHUB_API_URL,
            config.GIST_FILENAME,
            config.GIST_DESCRIPTION,
            public=config.GIST_PUBLIC,
            timeout=config.REQUEST_TIMEOUT
        )
        tracker = Tracker(
            cache, gist_client,
            debounce_seconds=config.SYNC_DEBOUNCE_SECONDS,
            synced_display_seconds=config.SYNC_STATUS_DISPLAY_SECONDS
        )
    if strava is None:
        strava = StravaClient(
            config.STRAVA_API_URL,
            config.STRAVA_OAUTH_URL,
            cache_ttl=config.STRAVA_CACHE_TTL,
            timeout=config.REQUEST_TIMEOUT
        )
    if routes is None:
        routes = load_routes(config.ROUTES_FILE)

    if load:
        tracker.load()

    _services.clear()
    _services.update({
        'tracker': tracker,
        'strava': strava,
        'linker': ActivityLinker(tracker, strava),
        'routes': routes,
    })
    return _services


def _get_services():
    with _services_lock:
        if not _services:
            init_services()
    return _services


def _error_response(error):
    """Map a tracker error to the JSON error shape and HTTP status."""
    if isinstance(error, ValidationError):
        status = 400
    elif isinstance(error, AuthError):
        status = 401
    elif isinstance(error, NotFoundError):
        status = 404
    elif isinstance(error, UpstreamError):
        status = 404 if error.status_code == 404 else 502
    elif isinstance(error, TransientError):
        status = 503
    else:
        status = 500
    return jsonify({"success": False, "error": error.message}), status


def _sync_response():
    scheduler = _get_services()['tracker'].scheduler
    return {
        "status": scheduler.status.value,
        "pending": scheduler.pending,
        "in_flight": scheduler.in_flight,
        "error": scheduler.last_error,
    }


@app.route("/")
def index():
    services = _get_services()
    tracker = services['tracker']
    return jsonify({
        "success": True,
        "service": "route-tracker",
        "routes": len(services['routes']),
        "authenticated": tracker.is_authenticated,
        "gist_id": tracker.gist_id,
    })


@app.route("/api/routes")
def list_routes():
    services = _get_services()
    routes = services['routes']
    completed = services['tracker'].current_snapshot().completed

    try:
        filtered = filter_routes(routes, completed,
                                 request.args.get("filter", "all"),
                                 request.args.get("q", ""))
    except ValidationError as e:
        return _error_response(e)

    return jsonify({
        "success": True,
        "stats": calculate_stats(routes, completed),
        "groups": group_by_map(filtered, completed),
        "count": len(filtered)
    })


@app.route("/api/state")
def get_state():
    tracker = _get_services()['tracker']
    state = tracker.state()
    snapshot = tracker.current_snapshot()
    state["activity_summaries"] = {
        route_id: summarize_activity(record, config.DEFAULT_TIMEZONE)
        for route_id, record in snapshot.activities.items()
    }
    return jsonify({"success": True, **state})


@app.route("/api/routes/<path:route_id>/toggle", methods=["POST"])
def toggle_route(route_id):
    tracker = _get_services()['tracker']
    data = request.get_json(silent=True) or {}

    try:
        if "completed" in data:
            completed = tracker.set_route_completed(route_id, bool(data["completed"]))
        else:
            completed = tracker.toggle_route(route_id)
    except TrackerError as e:
        return _error_response(e)

    return jsonify({
        "success": True,
        "route": route_id,
        "completed": completed,
        "saved_locally": True,
        "sync_scheduled": tracker.is_authenticated,
        "sync": _sync_response()
    })


# =============================================================================
# Authentication and Gist setup
# =============================================================================

@app.route("/api/auth/login", methods=["POST"])
def login():
    tracker = _get_services()['tracker']
    data = request.get_json(silent=True) or {}

    try:
        user = tracker.login(data.get("token"))
    except AuthError:
        return jsonify({
            "success": False,
            "error": "Invalid token. Please check your GitHub Personal Access Token."
        }), 401
    except TrackerError as e:
        return _error_response(e)

    return jsonify({
        "success": True,
        "user": user,
        "gist_id": tracker.gist_id,
        # No gist yet: the client can offer to enter an existing one
        "needs_gist_setup": not tracker.gist_id
    })


@app.route("/api/auth/logout", methods=["POST"])
def logout():
    _get_services()['tracker'].logout()
    return jsonify({"success": True})


@app.route("/api/gist", methods=["POST"])
def set_gist():
    tracker = _get_services()['tracker']
    data = request.get_json(silent=True) or {}

    try:
        tracker.set_gist_id(data.get("gist_id"), background=False)
    except TrackerError as e:
        return _error_response(e)

    return jsonify({
        "success": True,
        "gist_id": tracker.gist_id,
        "reconcile": tracker.last_reconcile,
        "completed_routes": sorted(tracker.current_snapshot().completed)
    })


@app.route("/api/sync/status")
def sync_status():
    return jsonify({"success": True, **_sync_response()})


# =============================================================================
# Strava
# =============================================================================

@app.route("/api/strava/session", methods=["POST"])
def strava_session():
    tracker = _get_services()['tracker']
    data = request.get_json(silent=True) or {}

    try:
        tracker.set_strava_token(data.get("access_token"))
    except TrackerError as e:
        return _error_response(e)

    return jsonify({"success": True, "strava_connected": True})


@app.route("/api/activities/<path:route_id>", methods=["POST"])
def link_activity(route_id):
    linker = _get_services()['linker']
    data = request.get_json(silent=True) or {}

    try:
        record = linker.link(route_id, data.get("activity", ""))
    except TrackerError as e:
        return _error_response(e)

    return jsonify({
        "success": True,
        "route": route_id,
        "activity": record.to_dict(),
        "summary": summarize_activity(record, config.DEFAULT_TIMEZONE)
    })


@app.route("/api/activities/<path:route_id>", methods=["DELETE"])
def unlink_activity(route_id):
    removed = _get_services()['linker'].unlink(route_id)
    return jsonify({"success": True, "route": route_id, "removed": removed})


def _cors_headers(response):
    origin = request.headers.get("Origin") or request.headers.get("Referer")
    if origin == config.ALLOWED_ORIGIN or not origin:
        response.headers["Access-Control-Allow-Origin"] = config.ALLOWED_ORIGIN
    response.headers["Access-Control-Allow-Methods"] = "POST, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = "Content-Type"
    response.headers["Access-Control-Max-Age"] = "86400"
    return response


@app.route("/api/strava/token", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
def strava_token_exchange():
    """Exchange a Strava OAuth code for tokens without exposing the client secret."""
    if request.method == "OPTIONS":
        return _cors_headers(app.make_response(("", 200)))

    if request.method != "POST":
        return _cors_headers(app.make_response((jsonify({"error": "Method not allowed"}), 405)))

    data = request.get_json(silent=True) or {}
    code = data.get("code")
    client_id = data.get("client_id")
    redirect_uri = data.get("redirect_uri")

    if not code or not client_id or not redirect_uri:
        return _cors_headers(app.make_response((jsonify({"error": "Missing required parameters"}), 400)))

    if not config.STRAVA_CLIENT_SECRET:
        print("[ERROR] STRAVA_CLIENT_SECRET environment variable not set", flush=True)
        return _cors_headers(app.make_response((jsonify({"error": "Server configuration error"}), 500)))

    status, body = _get_services()['strava'].exchange_code(
        code, client_id, redirect_uri, config.STRAVA_CLIENT_SECRET)
    return _cors_headers(app.make_response((jsonify(body), status)))


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
