"""
Load-time reconciliation of the local snapshot with the remote gist.

Completions are merged by set union: a route completed on any device stays
completed. Linked activities are merged key-wise with the local record
winning on collision. The merge never writes to the gist; only the sync
scheduler does that, in response to a later local mutation.
"""
from lib.errors import AuthError, NotFoundError, TransientError
from lib.snapshot import SyncSnapshot

OUTCOME_NO_REMOTE = 'no-remote'
OUTCOME_NOT_FOUND = 'not-found'
OUTCOME_MERGED = 'merged'
OUTCOME_ERROR = 'error'
OUTCOME_AUTH_ERROR = 'auth-error'


def merge_snapshots(local, remote):
    """Merge two snapshots; either may be None."""
    local = local or SyncSnapshot()
    remote = remote or SyncSnapshot()

    activities = dict(remote.activities)
    activities.update(local.activities)

    stamps = [s for s in (local.last_updated, remote.last_updated) if s is not None]

    return SyncSnapshot(
        completed=set(local.completed) | set(remote.completed),
        activities=activities,
        last_updated=max(stamps) if stamps else None,
    )


def fetch_for_reconcile(client, gist_id, token=None):
    """Read the remote snapshot for a reconciliation.

    Returns:
        (remote, outcome): remote is a SyncSnapshot or None, and outcome is
        OUTCOME_MERGED only when the read succeeded
    """
    if not gist_id:
        return None, OUTCOME_NO_REMOTE

    try:
        remote = client.fetch_remote(gist_id, token=token)
    except NotFoundError:
        print(f"[RECONCILE] Gist {gist_id} not found, will create on first save", flush=True)
        return None, OUTCOME_NOT_FOUND
    except AuthError as e:
        print(f"[RECONCILE] Not authorized to read gist {gist_id}: {e}", flush=True)
        return None, OUTCOME_AUTH_ERROR
    except TransientError as e:
        print(f"[RECONCILE] Could not load gist {gist_id}, keeping local copy: {e}", flush=True)
        return None, OUTCOME_ERROR
    return remote, OUTCOME_MERGED


def reconcile(local, cache, client, gist_id, token=None):
    """Produce the authoritative snapshot for this load.

    Args:
        local: SyncSnapshot read from the local cache, or None
        cache: LocalCache the merge result is written back to
        client: GistClient used to read the remote snapshot
        gist_id: remote handle, or None when no gist is known yet
        token: optional GitHub token (private gists need one)

    Returns:
        (snapshot, outcome) where outcome is one of the OUTCOME_* constants
    """
    base = local.copy() if local is not None else SyncSnapshot()

    remote, outcome = fetch_for_reconcile(client, gist_id, token=token)
    if outcome != OUTCOME_MERGED:
        return base, outcome

    merged = merge_snapshots(base, remote)
    cache.write_local(merged)
    print(f"[RECONCILE] Merged {len(merged.completed)} completed routes, "
          f"{len(merged.activities)} linked activities", flush=True)
    return merged, OUTCOME_MERGED
