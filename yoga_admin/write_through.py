"""
Write-through plumbing shared by the course and class repositories.

A write commits locally on the store's executor, then mirrors the record to
Firebase. The caller gets a Future for the outcome and is free to ignore it.
"""

import logging
from concurrent.futures import Future
from typing import Any, Callable, NamedTuple, Optional

from yoga_admin.errors import LocalStoreError, RemoteStoreError, ValidationError

logger = logging.getLogger(__name__)


class WriteResult(NamedTuple):
    """Outcome of a repository write."""
    success: bool
    message: str
    record: Any = None
    remote_synced: bool = False


def submit_write(executor, description: str, work: Callable[[], WriteResult]) -> Future:
    """Run work on the executor, turning local failures into an unsuccessful WriteResult"""

    def run() -> WriteResult:
        try:
            return work()
        except (ValidationError, LocalStoreError) as e:
            logger.error("%s failed: %s", description, e)
            return WriteResult(False, str(e))

    return executor.submit(run)


def push_record(remote_db, node: str, record, save_key: Callable[[int, Optional[str]], None]) -> bool:
    """
    Mirror a locally committed record to node/<firebase_key>.

    A record without a remote key first gets one from the server, which is
    written back onto the local row before the remote write. If that first
    write fails the key is dropped again, leaving the row unsynced. Returns
    True when the remote copy is current.
    """
    if remote_db is None:
        return False
    new_key = False
    try:
        if not record.firebase_key:
            key = remote_db.new_key(node)
            save_key(record.id, key)
            record.firebase_key = key
            new_key = True
        remote_db.set_value(node, record.firebase_key, record.to_firebase())
    except (RemoteStoreError, LocalStoreError):
        logger.exception("Could not sync %s record %s", node, record.firebase_key or record.id)
        if new_key:
            _drop_key(record, save_key)
        return False
    return True


def _drop_key(record, save_key: Callable[[int, Optional[str]], None]) -> None:
    # A key with no remote record would read as a remote deletion in the next full snapshot
    try:
        save_key(record.id, None)
        record.firebase_key = None
    except LocalStoreError:
        logger.exception("Could not clear unused key on record %s", record.id)


def remove_remote(remote_db, node: str, key: Optional[str]) -> bool:
    """Remove node/key; unkeyed records have nothing to remove"""
    if not key:
        return True
    if remote_db is None:
        return False
    try:
        remote_db.remove_value(node, key)
    except RemoteStoreError:
        logger.exception("Could not remove %s/%s", node, key)
        return False
    return True
