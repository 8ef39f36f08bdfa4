# =============================================================================
# tests/unit/test_firebase_db.py
# Unit Tests for the Firebase Realtime Database wrapper
# =============================================================================

from unittest.mock import MagicMock, patch

import pytest
from firebase_admin.exceptions import UnavailableError

from yoga_admin.errors import RemoteStoreError
from yoga_admin.firebase_db import FirebaseDatabase, _children_as_dict


@pytest.fixture
def mock_firebase():
    """Patch app initialisation and db.reference so nothing leaves the process"""
    with patch("yoga_admin.firebase_db.firebase_admin") as admin, \
            patch("yoga_admin.firebase_db.db") as db_module:
        admin.get_app.side_effect = ValueError("no app")
        admin.initialize_app.return_value = MagicMock(name="app")
        yield admin, db_module


@pytest.fixture
def firebase(mock_firebase):
    return FirebaseDatabase("https://yoga.example.firebaseio.com", credentials_file="missing.json",
                            http_timeout=10)


class TestInitConnection:
    def test_default_credentials_when_file_missing(self, mock_firebase, firebase):
        admin, _ = mock_firebase

        admin.initialize_app.assert_called_once_with(options={
            "databaseURL": "https://yoga.example.firebaseio.com",
            "httpTimeout": 10,
        })
        assert firebase.app is admin.initialize_app.return_value

    def test_certificate_when_file_present(self, mock_firebase, tmp_path):
        admin, _ = mock_firebase
        cred_file = tmp_path / "service-account.json"
        cred_file.write_text("{}")

        with patch("yoga_admin.firebase_db.credentials") as credentials:
            FirebaseDatabase("https://db", credentials_file=str(cred_file))

        credentials.Certificate.assert_called_once_with(str(cred_file))
        args, _ = admin.initialize_app.call_args
        assert args[0] is credentials.Certificate.return_value

    def test_existing_app_is_reused(self, mock_firebase):
        admin, _ = mock_firebase
        admin.get_app.side_effect = None
        admin.get_app.return_value = "existing"

        firebase = FirebaseDatabase("https://db")

        assert firebase.app == "existing"
        admin.initialize_app.assert_not_called()

    def test_init_failure_wrapped(self, mock_firebase):
        admin, _ = mock_firebase
        admin.initialize_app.side_effect = ValueError("bad url")

        with pytest.raises(RemoteStoreError):
            FirebaseDatabase("not-a-url")


class TestOperations:
    def test_new_key(self, mock_firebase, firebase):
        _, db_module = mock_firebase
        db_module.reference.return_value.push.return_value.key = "-Nabc"

        assert firebase.new_key("courses") == "-Nabc"
        db_module.reference.assert_called_with("courses", app=firebase.app)

    def test_set_value(self, mock_firebase, firebase):
        _, db_module = mock_firebase
        child = db_module.reference.return_value.child.return_value

        firebase.set_value("classes", "-k", {"date": "01/01/2024"})

        db_module.reference.return_value.child.assert_called_with("-k")
        child.set.assert_called_once_with({"date": "01/01/2024"})

    def test_query_equal_to(self, mock_firebase, firebase):
        _, db_module = mock_firebase
        query = db_module.reference.return_value.order_by_child.return_value.equal_to.return_value
        query.get.return_value = {"-b1": {"classId": "-c1"}}

        assert firebase.query_equal_to("bookings", "classId", "-c1") == {"-b1": {"classId": "-c1"}}
        db_module.reference.return_value.order_by_child.assert_called_with("classId")

    def test_update_children_from_root(self, mock_firebase, firebase):
        _, db_module = mock_firebase

        firebase.update_children({"bookings/-b1": None})

        db_module.reference.assert_called_with("/", app=firebase.app)
        db_module.reference.return_value.update.assert_called_once_with({"bookings/-b1": None})

    def test_empty_update_is_skipped(self, mock_firebase, firebase):
        _, db_module = mock_firebase
        db_module.reference.reset_mock()

        firebase.update_children({})

        db_module.reference.assert_not_called()

    def test_sdk_errors_are_wrapped(self, mock_firebase, firebase):
        _, db_module = mock_firebase
        db_module.reference.return_value.get.side_effect = UnavailableError("down", cause=None)

        with pytest.raises(RemoteStoreError, match="reading courses"):
            firebase.get_children("courses")

    def test_listen_returns_registration(self, mock_firebase, firebase):
        _, db_module = mock_firebase
        callback = MagicMock()

        registration = firebase.listen("courses", callback)

        db_module.reference.return_value.listen.assert_called_once_with(callback)
        assert registration is db_module.reference.return_value.listen.return_value


class TestChildrenAsDict:
    def test_dict_passthrough(self):
        assert _children_as_dict({"a": 1}) == {"a": 1}

    def test_list_values_keyed_by_index(self):
        assert _children_as_dict([None, {"x": 1}]) == {"1": {"x": 1}}

    def test_empty_node(self):
        assert _children_as_dict(None) == {}
