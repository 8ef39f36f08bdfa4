"""
Command line entry point.

    yoga-admin sync [--force]   import courses and classes from Firebase
    yoga-admin upload           push every local course and class to Firebase
    yoga-admin status           show local counts and sync state
    yoga-admin listen           follow remote changes until interrupted
    yoga-admin reset --yes      delete all courses and classes, locally and remotely
"""

import sys
import time

from yoga_admin.app import YogaAdminApp
from yoga_admin.app_config import load_app_config
from yoga_admin.errors import SyncInProgressError, YogaAdminError
from yoga_admin.logging_config import get_logger, setup_logging

logger = get_logger(__name__)

USAGE = "Usage: yoga-admin {sync [--force] | upload | status | listen | reset --yes}"


def cmd_sync(app, args):
    if "--force" in args:
        app.preferences.set_initial_sync_complete(False)
    try:
        report = app.sync_manager.perform_initial_sync()
    except SyncInProgressError as e:
        print(f"Error: {e}")
        return 1
    print(report.summary())
    return 0 if report.completed or report.already_complete else 1


def cmd_upload(app, args):
    if app.remote_db is None:
        print("Error: not connected to Firebase")
        return 1
    counts = app.sync_manager.upload_all_data()
    print(f"Uploaded {counts['courses']} courses and {counts['classes']} classes")
    if counts["failed"]:
        print(f"Failed to upload {counts['failed']} records")
        return 1
    return 0


def cmd_status(app, args):
    status = app.sync_manager.get_sync_status()
    print(f"Courses: {len(app.courses.list_courses())}")
    print(f"Classes: {len(app.local_db.list_classes())}")
    for key, value in status.items():
        print(f"{key}: {value}")
    return 0


def cmd_listen(app, args):
    if not app.sync_manager.start_realtime_sync():
        print("Error: could not start realtime sync")
        return 1
    print("Listening for remote changes, press Ctrl+C to stop")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nStopping...")
    return 0


def cmd_reset(app, args):
    if "--yes" not in args:
        print("This deletes every course, class and booking. Re-run with --yes to confirm.")
        return 1
    result = app.courses.delete_all().result()
    print(result.message)
    if not result.remote_synced:
        print("Warning: remote data was not cleared")
    return 0 if result.success else 1


COMMANDS = {
    "sync": cmd_sync,
    "upload": cmd_upload,
    "status": cmd_status,
    "listen": cmd_listen,
    "reset": cmd_reset,
}


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if not argv or argv[0] not in COMMANDS:
        print(USAGE)
        return 2

    config = load_app_config()
    setup_logging(config["log_level"], log_to_file=config["log_to_file"])

    app = YogaAdminApp(config)
    try:
        return COMMANDS[argv[0]](app, argv[1:])
    except YogaAdminError as e:
        logger.error("Command %s failed: %s", argv[0], e)
        print(f"Error: {e}")
        return 1
    finally:
        app.shutdown()


if __name__ == "__main__":
    sys.exit(main())
