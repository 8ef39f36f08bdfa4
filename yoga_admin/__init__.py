"""
Yoga Admin

Administration backend for scheduling recurring yoga classes.
Courses and classes live in a local SQLite database and are mirrored to a
Firebase Realtime Database.
"""

__version__ = "1.0.0"
