"""
Firebase Realtime Database Module

This module wraps the firebase_admin Realtime Database client. The remote
store is a tree with three top-level nodes:

    courses/<key>   flat course records
    classes/<key>   flat class records (courseFirebaseKey points at the parent)
    bookings/<key>  bookings made from the member app
    users/<uid>     member profiles (read-only here)

Keys are generated by the server through push(). Every record also carries its
own key in a "firebaseKey" field so it can be looked up after a round trip.
"""

import logging
import os
from typing import Any, Callable, Dict, Optional

import firebase_admin
from firebase_admin import credentials, db
from firebase_admin.exceptions import FirebaseError

from yoga_admin.errors import RemoteStoreError

logger = logging.getLogger(__name__)

COURSES_NODE = "courses"
CLASSES_NODE = "classes"
BOOKINGS_NODE = "bookings"
USERS_NODE = "users"

REMOTE_ERRORS = (FirebaseError, ValueError, OSError)


def _children_as_dict(value: Any) -> Dict[str, Any]:
    """Normalise a node value into {key: child}; the SDK returns lists for integer-like keys"""
    if isinstance(value, dict):
        return dict(value)
    if isinstance(value, list):
        return {str(index): child for index, child in enumerate(value) if child is not None}
    return {}


class FirebaseDatabase:
    """Thin client for the yoga nodes of a Firebase Realtime Database."""

    def __init__(self, database_url: str, credentials_file: str = "firebase-service-account.json",
                 http_timeout: Optional[float] = 30):
        self.database_url = database_url
        self.credentials_file = credentials_file
        self.http_timeout = http_timeout
        self.app = None
        self.init_connection()

    def init_connection(self):
        """Initialize the Firebase app once per process and bind to it"""
        try:
            self.app = firebase_admin.get_app()
            logger.debug("Reusing initialized Firebase app")
            return
        except ValueError:
            pass

        options = {"databaseURL": self.database_url}
        if self.http_timeout:
            options["httpTimeout"] = self.http_timeout

        try:
            if self.credentials_file and os.path.exists(self.credentials_file):
                cred = credentials.Certificate(self.credentials_file)
                self.app = firebase_admin.initialize_app(cred, options)
                logger.info("Initialized Firebase with credentials from %s", self.credentials_file)
            else:
                logger.warning("Credentials file not found at %s, using default credentials",
                               self.credentials_file)
                self.app = firebase_admin.initialize_app(options=options)
        except REMOTE_ERRORS as e:
            logger.error("Error connecting to Firebase Realtime Database: %s", e)
            raise RemoteStoreError(f"Could not initialize Firebase: {e}") from e

        logger.info("Connected to Firebase Realtime Database at %s", self.database_url)

    def reference(self, path: str = "/") -> db.Reference:
        return db.reference(path, app=self.app)

    def _call(self, description: str, func: Callable[[], Any]) -> Any:
        try:
            return func()
        except REMOTE_ERRORS as e:
            raise RemoteStoreError(f"Error {description}: {e}") from e

    def new_key(self, node: str) -> str:
        """Ask the server for a fresh child key under node"""
        return self._call(f"requesting key under {node}", lambda: self.reference(node).push().key)

    def set_value(self, node: str, key: str, data: Dict[str, Any]) -> None:
        self._call(f"writing {node}/{key}", lambda: self.reference(node).child(key).set(data))

    def get_value(self, node: str, key: str) -> Any:
        return self._call(f"reading {node}/{key}", lambda: self.reference(node).child(key).get())

    def get_children(self, node: str) -> Dict[str, Any]:
        """Read a whole node once as {key: record}"""
        value = self._call(f"reading {node}", lambda: self.reference(node).get())
        return _children_as_dict(value)

    def remove_value(self, node: str, key: str) -> None:
        self._call(f"removing {node}/{key}", lambda: self.reference(node).child(key).delete())

    def remove_node(self, node: str) -> None:
        self._call(f"removing {node}", lambda: self.reference(node).delete())

    def update_children(self, updates: Dict[str, Any]) -> None:
        """Apply a multi-path update from the root; a None value deletes that path"""
        if not updates:
            return
        self._call("applying multi-path update", lambda: self.reference().update(updates))

    def query_equal_to(self, node: str, child: str, value: Any) -> Dict[str, Any]:
        """Children of node whose child field equals value"""
        result = self._call(
            f"querying {node} by {child}",
            lambda: self.reference(node).order_by_child(child).equal_to(value).get(),
        )
        return _children_as_dict(result)

    def listen(self, node: str, callback: Callable[[db.Event], None]):
        """Stream changes under node; returns a registration with close()"""
        return self._call(f"listening on {node}", lambda: self.reference(node).listen(callback))
