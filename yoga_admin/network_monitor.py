"""
Connectivity monitor.

Polls for internet access on a background thread and calls the registered
callbacks whenever the device goes from offline to online. The first
successful check counts as such a transition.
"""

import logging
import socket
import threading
from typing import Callable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

CHECK_HOSTS = (("8.8.8.8", 53), ("1.1.1.1", 53))


def check_internet_connection(timeout: float = 3, hosts: Sequence[Tuple[str, int]] = CHECK_HOSTS) -> bool:
    """Check if we have internet connectivity by reaching a public DNS resolver"""
    for host in hosts:
        try:
            connection = socket.create_connection(host, timeout=timeout)
        except OSError:
            continue
        connection.close()
        return True
    return False


class NetworkMonitor:
    def __init__(self, check_interval: float = 30,
                 checker: Callable[[], bool] = check_internet_connection):
        self.check_interval = check_interval
        self.checker = checker
        self.is_online = False
        self._callbacks: List[Callable[[], None]] = []
        self._callbacks_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def add_online_callback(self, callback: Callable[[], None]) -> None:
        with self._callbacks_lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)

    def remove_online_callback(self, callback: Callable[[], None]) -> None:
        with self._callbacks_lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def check_now(self) -> bool:
        """Run one connectivity check, firing callbacks on an offline to online transition"""
        was_online = self.is_online
        try:
            currently_online = bool(self.checker())
        except Exception:
            logger.exception("Connectivity check failed")
            currently_online = False
        self.is_online = currently_online

        if currently_online and not was_online:
            logger.info("Connection available")
            self._notify_online()
        elif was_online and not currently_online:
            logger.warning("Connection lost")
        return currently_online

    def _notify_online(self) -> None:
        with self._callbacks_lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Error in online callback")

    def start(self) -> None:
        """Check immediately, then keep checking every check_interval seconds"""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._monitor_loop, daemon=True, name="NetworkMonitor")
        self._thread.start()
        logger.info("Connectivity monitor started (checking every %ss)", self.check_interval)

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        logger.debug("Connectivity monitor stopped")

    def _monitor_loop(self) -> None:
        while not self._stop_event.is_set():
            self.check_now()
            if self._stop_event.wait(timeout=self.check_interval):
                break
