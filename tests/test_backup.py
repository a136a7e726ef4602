import json
import os
import sys
from unittest import mock

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from backup_service import BackupService
from db import SCHEMA_VERSION, BaseRepository, LiftRepository, MeetRepository, SprintRepository
from validation import BackupFormatError, StorageError


@pytest.fixture
def populated(tmp_path):
    path = str(tmp_path / "source.db")
    sprints = SprintRepository(path)
    sid = sprints.create("2024-04-01")
    set_id = sprints.fetch_with_children(sid)["sets"][0]["id"]
    sprints.add_rep(set_id, 30, 3.9, is_fly=True, fly_in_distance=10)
    lid = LiftRepository(path).create("2024-04-02")
    LiftRepository(path).add_set(lid, "Deadlift", 180)
    meet_id = MeetRepository(path).create("Open", "outdoor", "FAT", "2024-04-03")
    MeetRepository(path).add_race(meet_id, 100, "final", 10.9, wind=-0.4)
    return path


def test_export_shape(populated):
    backup = BackupService(BaseRepository(populated)).export_all_data()
    assert backup["version"] == "1.0"
    assert backup["schema_version"] == SCHEMA_VERSION
    assert set(backup["data"]) == set(BaseRepository.table_names())
    assert len(backup["data"]["sprint_reps"]) == 1
    assert backup["data"]["sprint_reps"][0]["is_fly"] is True


def test_import_replaces_everything(populated, tmp_path):
    backup = BackupService(BaseRepository(populated)).export_all_data()
    target = str(tmp_path / "target.db")
    SprintRepository(target).create("2023-01-01")
    result = BackupService(BaseRepository(target)).import_all_data(backup, confirm=True)
    assert result["success"] is True
    assert result["counts"]["races"] == 1
    exported_again = BackupService(BaseRepository(target)).export_all_data()
    assert exported_again["data"] == backup["data"]


def test_unconfirmed_import_changes_nothing(populated, tmp_path):
    backup = BackupService(BaseRepository(populated)).export_all_data()
    target = str(tmp_path / "target.db")
    kept = SprintRepository(target).create("2023-01-01")
    seen = []

    def decline(report):
        seen.append(report)
        return False

    result = BackupService(BaseRepository(target)).import_all_data(backup, decline)
    assert result == {"success": False, "counts": {}, "error": "Import not confirmed"}
    assert seen[0]["is_valid"] is True
    assert SprintRepository(target).get(kept) is not None


def test_invalid_backup_rejected_before_writing(populated, tmp_path):
    backup = BackupService(BaseRepository(populated)).export_all_data()
    del backup["data"]["races"]
    backup["data"]["lift_sets"] = [{"exercise": "Deadlift"}]
    target = str(tmp_path / "target.db")
    kept = SprintRepository(target).create("2023-01-01")
    service = BackupService(BaseRepository(target))
    with pytest.raises(BackupFormatError) as excinfo:
        service.import_all_data(backup, confirm=True)
    assert "Missing table: races" in excinfo.value.problems
    assert any("without an id" in p for p in excinfo.value.problems)
    assert SprintRepository(target).get(kept) is not None


def test_old_backup_without_auxiliary_tables(populated, tmp_path):
    backup = BackupService(BaseRepository(populated)).export_all_data()
    backup["schema_version"] = 3
    del backup["data"]["auxiliary_sessions"]
    del backup["data"]["auxiliary_entries"]
    backup["data"]["legacy_notes"] = []
    service = BackupService(BaseRepository(str(tmp_path / "target.db")))
    report = service.validate_backup(backup)
    assert report["is_valid"] is True
    assert len(report["warnings"]) == 3
    result = service.import_all_data(backup, confirm=True)
    assert result["counts"]["auxiliary_entries"] == 0


def test_newer_schema_is_a_warning(populated):
    service = BackupService(BaseRepository(populated))
    backup = service.export_all_data()
    backup["schema_version"] = SCHEMA_VERSION + 1
    report = service.validate_backup(backup)
    assert report["is_valid"] is True
    assert "newer schema" in report["warnings"][0]
    assert service.validate_backup([])["is_valid"] is False


def test_storage_failure_reported(populated, tmp_path):
    service = BackupService(BaseRepository(populated))
    backup = service.export_all_data()
    with mock.patch.object(BaseRepository, "replace_all", side_effect=StorageError("disk full")):
        result = service.import_all_data(backup, confirm=True)
    assert result == {"success": False, "counts": {}, "error": "disk full"}


def test_save_and_load(populated, tmp_path):
    out = str(tmp_path / "backup.json")
    service = BackupService(BaseRepository(populated))
    saved = service.save(out)
    assert BackupService.load(out)["data"] == json.loads(json.dumps(saved["data"]))
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(BackupFormatError):
        BackupService.load(str(broken))
