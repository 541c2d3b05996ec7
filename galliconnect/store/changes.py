"""Order change notifications that cross process boundaries.

Every worker serving a hosted database must hear about order writes made by the
others.  PostgreSQL pushes them with LISTEN/NOTIFY; other file-backed databases
are polled through a version row that order writes bump in the same
transaction.  An in-memory SQLite database belongs to a single process, so
there the writer publishes straight to the in-process feed.
"""

from __future__ import annotations

import enum
import logging
import select
import threading
from typing import Callable, Optional

from sqlalchemy.engine import make_url

logger = logging.getLogger(__name__)

ORDERS_CHANNEL = 'galliconnect_orders'


class ChangeMode(str, enum.Enum):
    IN_PROCESS = 'in-process'
    NOTIFY = 'notify'
    POLL = 'poll'


def change_mode_for(url: str) -> ChangeMode:
    parsed = make_url(url)
    backend = parsed.get_backend_name()
    if backend == 'postgresql':
        return ChangeMode.NOTIFY
    if backend == 'sqlite' and parsed.database in (None, '', ':memory:'):
        return ChangeMode.IN_PROCESS
    return ChangeMode.POLL


class ChangeWatcher(threading.Thread):
    """Background thread that calls ``publish`` whenever orders change elsewhere."""

    def __init__(self, app, publish: Callable[[], None], interval: float) -> None:
        super().__init__(name=type(self).__name__, daemon=True)
        self.app = app
        self.publish = publish
        self.interval = interval
        self._halt = threading.Event()

    @property
    def stopped(self) -> bool:
        return self._halt.is_set()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._halt.set()
        if self.is_alive() and threading.current_thread() is not self:
            self.join(timeout)

    def announce(self) -> None:
        # Subscribers re-read through Flask-SQLAlchemy, which needs an app context.
        with self.app.app_context():
            self.publish()


class VersionPoller(ChangeWatcher):
    def __init__(self, app, publish: Callable[[], None], interval: float,
                 read_version: Callable[[], int], baseline: int) -> None:
        super().__init__(app, publish, interval)
        self.read_version = read_version
        self.seen = baseline

    def run(self) -> None:
        while not self._halt.wait(self.interval):
            try:
                with self.app.app_context():
                    current = self.read_version()
            except Exception:
                logger.exception('Reading the order version failed; will retry')
                continue
            if current != self.seen:
                self.seen = current
                self.announce()


class NotifyListener(ChangeWatcher):
    """LISTENs on a dedicated psycopg2 connection outside the pool.

    ``connect`` returns a detached SQLAlchemy pool connection; it is closed when
    the listener stops or loses it, and a fresh one is opened after ``interval``.
    """

    def __init__(self, app, publish: Callable[[], None], interval: float,
                 connect: Callable[[], object], channel: str = ORDERS_CHANNEL) -> None:
        super().__init__(app, publish, interval)
        self.connect = connect
        self.channel = channel
        self.connections = 0

    def run(self) -> None:
        while not self._halt.is_set():
            try:
                self._listen()
            except Exception:
                logger.exception('Order notification listener lost its connection; reconnecting')
                self._halt.wait(self.interval)

    def _listen(self) -> None:
        pooled = self.connect()
        try:
            connection = pooled.driver_connection
            connection.autocommit = True
            with connection.cursor() as cursor:
                cursor.execute(f'LISTEN {self.channel}')
            self.connections += 1
            if self.connections > 1:
                # Writes may have landed while the connection was down.
                self.announce()

            while not self._halt.is_set():
                ready, _, _ = select.select([connection], [], [], self.interval)
                if not ready:
                    continue
                connection.poll()
                if connection.notifies:
                    del connection.notifies[:]
                    self.announce()
        finally:
            pooled.close()
