"""Unit tests for dataroom.engine.errors — Error hierarchy & serialization."""

import json
import pytest

from dataroom.engine.errors import (
    DataroomConfigError,
    DataroomDuplicationError,
    DataroomError,
    DataroomIndexingError,
    DataroomNotFoundError,
    DataroomNotificationError,
    DataroomValidationError,
    FolderNameConflictError,
)


class TestDataroomError:
    """Base error class tests."""

    def test_basic_creation(self):
        err = DataroomError("something broke")
        assert err.message == "something broke"
        assert str(err) == "something broke"
        assert err.error_type == "DataroomError"
        assert err.status_code == 500
        assert err.dataroom_id is None
        assert err.operation is None

    def test_context_fields(self):
        err = DataroomError("fail", dataroom_id="dr_1", operation="move_folders", attempt=2)
        assert err.dataroom_id == "dr_1"
        assert err.operation == "move_folders"
        assert err.context["attempt"] == 2

    def test_to_dict(self):
        err = DataroomError("fail", dataroom_id="dr_1", operation="reindex", batch=3)
        d = err.to_dict()
        assert d["error_type"] == "DataroomError"
        assert d["message"] == "fail"
        assert d["dataroom_id"] == "dr_1"
        assert d["operation"] == "reindex"
        assert d["context"] == {"batch": "3"}
        assert "timestamp" in d

    def test_to_json(self):
        parsed = json.loads(DataroomError("fail").to_json())
        assert parsed["error_type"] == "DataroomError"
        assert parsed["message"] == "fail"

    def test_repr(self):
        r = repr(DataroomError("fail", dataroom_id="dr_1", operation="reindex"))
        assert "DataroomError" in r
        assert "dr_1" in r
        assert "reindex" in r


class TestSubclasses:
    @pytest.mark.parametrize("cls,status", [
        (DataroomNotFoundError, 404),
        (DataroomValidationError, 400),
        (FolderNameConflictError, 409),
        (DataroomIndexingError, 500),
        (DataroomDuplicationError, 500),
        (DataroomConfigError, 500),
        (DataroomNotificationError, 500),
    ])
    def test_hierarchy_and_status(self, cls, status):
        err = cls("boom")
        assert isinstance(err, DataroomError)
        assert err.status_code == status
        assert err.error_type == cls.__name__

    def test_not_found_record(self):
        err = DataroomNotFoundError("Folder not found", record_type="folder", record_id="f_1")
        d = err.to_dict()
        assert d["status_code"] == 404
        assert d["record_type"] == "folder"
        assert d["record_id"] == "f_1"

    def test_conflicting_names(self):
        err = FolderNameConflictError("conflict", conflicting_names=("Legal", "Finance"))
        assert err.conflicting_names == ["Legal", "Finance"]
        assert err.to_dict()["conflicting_names"] == ["Legal", "Finance"]

    def test_conflict_without_names(self):
        assert FolderNameConflictError("conflict").conflicting_names == []

    def test_indexing_attempts(self):
        err = DataroomIndexingError("failed", attempts=4)
        assert err.attempts == 4

    def test_catch_as_base(self):
        with pytest.raises(DataroomError):
            raise DataroomDuplicationError("copy failed", operation="duplicate_dataroom")
