import os
from dotenv import load_dotenv

load_dotenv()

_PROJECT_DIR = os.path.dirname(os.path.abspath(__file__))

FLASK_SECRET_KEY = os.getenv("FLASK_SECRET_KEY", "route-tracker-local-session-key")
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "UTC")
REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", "15"))

GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com")
GIST_FILENAME = os.getenv("GIST_FILENAME", "zwift_routes.json")
GIST_DESCRIPTION = os.getenv("GIST_DESCRIPTION", "Zwift Route Tracker - Completed Routes")
GIST_PUBLIC = os.getenv("GIST_PUBLIC", "true").lower() in ("1", "true", "yes")

TRACKER_STATE_FILE = os.getenv("TRACKER_STATE_FILE", os.path.join(_PROJECT_DIR, "tracker_state.json"))
TRACKER_GIST_ID_FILE = os.getenv("TRACKER_GIST_ID_FILE", os.path.join(_PROJECT_DIR, "tracker_gist_id.json"))
ROUTES_FILE = os.getenv("ROUTES_FILE", os.path.join(_PROJECT_DIR, "routes.json"))

SYNC_DEBOUNCE_SECONDS = float(os.getenv("SYNC_DEBOUNCE_SECONDS", "1.0"))
SYNC_STATUS_DISPLAY_SECONDS = float(os.getenv("SYNC_STATUS_DISPLAY_SECONDS", "2.0"))

STRAVA_API_URL = os.getenv("STRAVA_API_URL", "https://www.strava.com/api/v3")
STRAVA_OAUTH_URL = os.getenv("STRAVA_OAUTH_URL", "https://www.strava.com/oauth/token")
STRAVA_CLIENT_SECRET = os.getenv("STRAVA_CLIENT_SECRET", "")
STRAVA_CACHE_TTL = int(os.getenv("STRAVA_CACHE_TTL", "3600"))
ALLOWED_ORIGIN = os.getenv("ALLOWED_ORIGIN", "http://localhost:5000")
