"""
Exceptions raised by the yoga admin stores, repositories and services.
"""


class YogaAdminError(Exception):
    """Base class for all yoga admin errors"""
    pass


class ValidationError(YogaAdminError):
    """Input rejected before anything was written"""
    pass


class DuplicateClassError(ValidationError):
    """A class already exists for the course on the requested date"""

    def __init__(self, course_id, date):
        self.course_id = course_id
        self.date = date
        super().__init__(f"A class already exists for this course on {date}")


class LocalStoreError(YogaAdminError):
    """Failure reading or writing the local SQLite database"""
    pass


class RemoteStoreError(YogaAdminError):
    """Failure talking to the Firebase Realtime Database"""
    pass


class SyncInProgressError(YogaAdminError):
    """A sync sweep is already running"""
    pass
