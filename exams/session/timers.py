import logging
import threading

from django.db import connections

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Calls ``func`` every ``interval`` seconds on a daemon thread until cancelled."""

    def __init__(self, interval, func, name='periodic-task'):
        self.interval = interval
        self.func = func
        self.name = name
        self._stopped = threading.Event()
        self._thread = None

    @property
    def is_running(self):
        return self._thread is not None and self._thread.is_alive() and not self._stopped.is_set()

    def start(self):
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    @property
    def thread(self):
        return self._thread

    def cancel(self, wait=True, timeout=None):
        self._stopped.set()
        thread = self._thread
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self):
        try:
            while not self._stopped.wait(self.interval):
                try:
                    self.func()
                except Exception:
                    logger.exception(f"{self.name} raised; continuing on next interval")
        finally:
            connections.close_all()
