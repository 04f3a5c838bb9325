"""
Debounced remote sync.

Bursts of local mutations are coalesced into a single gist write: every
mutation re-arms a sliding quiet-period timer, and only when it expires is
the current snapshot captured and sent. At most one write is in flight at a
time. A timer that expires while a write is running does not start a second
write; it leaves a rerun request so exactly one more write follows the
current one, and that write captures the latest state.
"""
import threading

from lib.errors import TrackerError
from lib.snapshot import SyncStatus


class SyncScheduler:

    def __init__(self, get_snapshot, write_remote, delay=1.0, synced_display=2.0,
                 is_enabled=None, timer_factory=threading.Timer):
        """
        Args:
            get_snapshot: callable returning the snapshot to send, called
                when the timer fires (never at schedule time)
            write_remote: callable performing the remote write; raises on failure
            delay: quiet period in seconds
            synced_display: seconds the "synced" status stays up before idle
            is_enabled: callable, False when no credential is present
            timer_factory: threading.Timer compatible factory
        """
        self._get_snapshot = get_snapshot
        self._write_remote = write_remote
        self.delay = delay
        self.synced_display = synced_display
        self._is_enabled = is_enabled or (lambda: True)
        self._timer_factory = timer_factory

        self._lock = threading.Lock()
        self._timer = None
        self._reset_timer = None
        self._in_flight = False
        self._rerun = False
        self._status = SyncStatus.IDLE
        self._observers = []
        self.last_error = None
        self.attempt_count = 0

    @property
    def status(self):
        return self._status

    @property
    def pending(self):
        return self._timer is not None

    @property
    def in_flight(self):
        return self._in_flight

    def add_observer(self, callback):
        self._observers.append(callback)

    def notify_mutation(self):
        """Record that local state changed and (re)arm the quiet-period timer.

        Returns:
            True if a remote sync was scheduled, False when sync is disabled
        """
        if not self._is_enabled():
            return False
        with self._lock:
            self._arm()
        return True

    def cancel(self):
        """Drop a pending timer. An in-flight write still runs to completion."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._rerun = False

    def flush(self):
        """Run a pending sync now on the calling thread.

        Returns:
            True if a write ran, False if nothing was pending or a write
            was already in flight (it will be followed by one more)
        """
        with self._lock:
            if self._timer is None:
                return False
            self._timer.cancel()
            self._timer = None
            if self._in_flight:
                self._rerun = True
                return False
            self._in_flight = True
        self._run()
        return True

    def _arm(self):
        # Caller holds the lock
        if self._timer is not None:
            self._timer.cancel()

        def fire():
            self._on_timer(timer)

        timer = self._timer_factory(self.delay, fire)
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _on_timer(self, timer):
        with self._lock:
            if self._timer is not timer:
                # Superseded by a newer arm
                return
            self._timer = None
            if not self._is_enabled():
                return
            if self._in_flight:
                self._rerun = True
                return
            self._in_flight = True
        self._run()

    def _run(self):
        self._set_status(SyncStatus.SYNCING)
        succeeded = False
        try:
            snapshot = self._get_snapshot()
            self._write_remote(snapshot)
            succeeded = True
        except TrackerError as e:
            self.last_error = e.message
            print(f"[SYNC] Remote sync failed, changes saved locally: {e.message}", flush=True)
        except Exception as e:
            self.last_error = str(e)
            print(f"[SYNC] Unexpected error during remote sync: {e}", flush=True)

        with self._lock:
            self._in_flight = False
            self.attempt_count += 1
            rerun = self._rerun
            self._rerun = False
            if succeeded:
                self.last_error = None

        if succeeded:
            self._set_status(SyncStatus.SYNCED)
            self._schedule_idle()
        else:
            self._set_status(SyncStatus.ERROR)

        if rerun:
            with self._lock:
                if self._timer is None:
                    self._arm()

    def _schedule_idle(self):
        def back_to_idle():
            self._set_status(SyncStatus.IDLE, only_from=SyncStatus.SYNCED)

        with self._lock:
            if self._reset_timer is not None:
                self._reset_timer.cancel()
            self._reset_timer = self._timer_factory(self.synced_display, back_to_idle)
            self._reset_timer.daemon = True
            self._reset_timer.start()

    def _set_status(self, status, only_from=None):
        with self._lock:
            if only_from is not None and self._status is not only_from:
                return
            self._status = status
        for callback in list(self._observers):
            try:
                callback(status)
            except Exception as e:
                print(f"[SYNC] Status observer failed: {e}", flush=True)

    def report_error(self, message):
        """Surface a failure that happened outside a scheduled write."""
        self.last_error = message
        self._set_status(SyncStatus.ERROR)
