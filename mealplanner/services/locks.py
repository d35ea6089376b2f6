import threading
from contextlib import contextmanager


class UserLocks:
    """One lock per user ID so a user's messages are handled one at a time.

    Different users never wait on each other.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def lock_for(self, user_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, user_id: str):
        lock = self.lock_for(user_id)
        with lock:
            yield
