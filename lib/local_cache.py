"""
Local snapshot persistence.

Keeps the last known completion state on disk so a restart (or a remote
outage) never loses a mutation. Every failure here is printed and absorbed:
the local cache is a convenience, not something callers should have to
handle errors for.
"""
import json
import os

from lib.snapshot import SyncSnapshot, now_ms


class LocalCache:

    def __init__(self, state_file, gist_id_file):
        self.state_file = state_file
        self.gist_id_file = gist_id_file

    def read_local(self):
        """Load the persisted snapshot.

        Returns:
            SyncSnapshot, or None if no snapshot exists or it is corrupt
        """
        data = _load_json(self.state_file)
        if data is None:
            return None
        try:
            return SyncSnapshot.from_dict(data)
        except (ValueError, TypeError) as e:
            print(f"[CACHE] Ignoring corrupt snapshot in {self.state_file}: {e}", flush=True)
            return None

    def write_local(self, snapshot):
        """Stamp the snapshot with the current time and overwrite the file."""
        snapshot.last_updated = now_ms()
        _save_json(self.state_file, snapshot.to_dict())
        return snapshot

    def read_gist_id(self):
        data = _load_json(self.gist_id_file)
        if not isinstance(data, dict):
            return None
        return data.get('gist_id') or None

    def write_gist_id(self, gist_id):
        _save_json(self.gist_id_file, {'gist_id': gist_id})

    def clear(self):
        """Remove both cache files."""
        for path in (self.state_file, self.gist_id_file):
            if os.path.exists(path):
                try:
                    os.remove(path)
                except OSError as e:
                    print(f"[CACHE] Could not remove {path}: {e}", flush=True)


def _load_json(path):
    if not os.path.exists(path):
        return None
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError, IOError) as e:
        print(f"[CACHE] Could not read {path}: {e}", flush=True)
        return None


def _save_json(path, data):
    """Write JSON atomically (write to temp, then rename)."""
    tmp_path = path + '.tmp'
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f)
        os.replace(tmp_path, path)
    except (IOError, OSError, TypeError) as e:
        print(f"[ERROR] Failed to write {path}: {e}", flush=True)
