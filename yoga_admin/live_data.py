"""
Observable reads.

Screens never poll the stores. They subscribe to a query and receive a fresh
snapshot whenever the underlying data changes. Every callback runs on the
Dispatcher's single thread, so subscribers never see two deliveries at once.
"""

import itertools
import logging
import queue
import threading
from typing import Any, Callable, Iterable, Optional

from yoga_admin.errors import LocalStoreError, RemoteStoreError

logger = logging.getLogger(__name__)

_STOP = object()


class Dispatcher:
    """Serial delivery queue served by one dedicated thread."""

    def __init__(self, name: str = "live-data-dispatcher"):
        self._queue = queue.Queue()
        self._stopped = False
        self._thread = threading.Thread(target=self._run, daemon=True, name=name)
        self._thread.start()

    def _run(self):
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                func, args = item
                func(*args)
            except Exception:
                logger.exception("Dispatched callback failed")
            finally:
                self._queue.task_done()

    def is_dispatch_thread(self) -> bool:
        return threading.current_thread() is self._thread

    def post(self, func: Callable[..., Any], *args) -> None:
        """Queue func(*args) to run on the dispatch thread"""
        if self._stopped:
            logger.debug("Dispatcher stopped, dropping %r", func)
            return
        self._queue.put((func, args))

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Block until everything queued so far has run. Returns False on timeout."""
        if self.is_dispatch_thread() or self._stopped:
            return True
        done = threading.Event()
        self.post(done.set)
        return done.wait(timeout)

    def shutdown(self, timeout: float = 5) -> None:
        if self._stopped:
            return
        self._stopped = True
        self._queue.put(_STOP)
        self._thread.join(timeout=timeout)


class Subscription:
    """Handle returned by subscribe(); cancel() stops further deliveries."""

    def __init__(self, on_cancel: Optional[Callable[[], None]] = None):
        self._on_cancel = on_cancel
        self._active = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
        if self._on_cancel:
            self._on_cancel()


class LiveQuery:
    """A local-store query that re-runs after every commit touching one of its tables."""

    def __init__(self, local_db, tables: Iterable[str], loader: Callable[[], Any], dispatcher: Dispatcher):
        self.local_db = local_db
        self.tables = frozenset(tables)
        self._loader = loader
        self.dispatcher = dispatcher

    def get(self) -> Any:
        """Run the query on the calling thread and return the snapshot"""
        return self._loader()

    def subscribe(self, callback: Callable[[Any], None]) -> Subscription:
        """Deliver the current snapshot now and a new one after each relevant change"""
        sequence = itertools.count(1)
        last_delivered = [0]

        def deliver(seq, snapshot):
            # Refreshes run on several workers; never replace a newer snapshot with an older one
            if not subscription.active or seq <= last_delivered[0]:
                return
            last_delivered[0] = seq
            callback(snapshot)

        def refresh():
            if not subscription.active:
                return
            seq = next(sequence)
            try:
                snapshot = self._loader()
            except LocalStoreError:
                logger.exception("Live query refresh failed")
                return
            self.dispatcher.post(deliver, seq, snapshot)

        def schedule_refresh():
            try:
                self.local_db.executor.submit(refresh)
            except RuntimeError:
                logger.debug("Executor shut down, live query not refreshed")

        def on_change(tables):
            if tables & self.tables:
                schedule_refresh()

        remove_listener = []
        subscription = Subscription(lambda: remove_listener[0]())
        remove_listener.append(self.local_db.add_change_listener(on_change))
        schedule_refresh()
        return subscription


class RemoteLiveQuery:
    """A remote query re-read whenever anything under its node changes."""

    def __init__(self, remote_db, node: str, loader: Callable[[], Any], dispatcher: Dispatcher,
                 empty_result: Callable[[], Any] = list):
        self.remote_db = remote_db
        self.node = node
        self._loader = loader
        self.dispatcher = dispatcher
        self._empty_result = empty_result

    def get(self) -> Any:
        try:
            return self._loader()
        except RemoteStoreError:
            logger.exception("Remote query on %s failed", self.node)
            return self._empty_result()

    def subscribe(self, callback: Callable[[Any], None]) -> Subscription:
        def deliver(snapshot):
            if subscription.active:
                callback(snapshot)

        def on_event(_event):
            if subscription.active:
                self.dispatcher.post(deliver, self.get())

        registration = [None]

        def close():
            if registration[0] is not None:
                registration[0].close()

        subscription = Subscription(close)
        if self.remote_db is None:
            self.dispatcher.post(deliver, self._empty_result())
            return subscription
        try:
            registration[0] = self.remote_db.listen(self.node, on_event)
        except RemoteStoreError:
            logger.exception("Could not listen on %s", self.node)
            self.dispatcher.post(deliver, self._empty_result())
        return subscription
