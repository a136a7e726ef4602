import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import AuxiliaryRepository, SprintRepository
from validation import NotFoundError, PreconditionError, ValidationError


@pytest.fixture
def repos(tmp_path):
    path = str(tmp_path / "aux.db")
    return AuxiliaryRepository(path), SprintRepository(path)


def test_entries_on_auxiliary_session(repos):
    aux, _ = repos
    sid = aux.create("2024-03-03", "Plyos")
    first = aux.add_entry(sid, "plyometrics", "Box jumps", "contacts", 40)
    aux.add_entry(sid, "sled_work", "Heavy sled", "distance", 120, intensity=80)
    entries = aux.fetch_with_children(sid)["entries"]
    assert [e["sequence"] for e in entries] == [1, 2]
    updated = aux.update_entry(first, volume_value=50)
    assert updated["volume_value"] == 50
    with pytest.raises(ValidationError):
        aux.update_entry(first, category="yoga")


def test_entries_attached_to_sprint_session(repos):
    aux, sprints = repos
    aux_session = aux.create("2024-03-03")
    sprint_session = sprints.create("2024-03-03")
    aux.add_entry(sprint_session, "wicket_runs", "Wickets", "reps", 6, session_type="sprint")
    aux.add_entry(aux_session, "general", "Core", "sets", 3)
    assert len(aux.entries_for_session(sprint_session, "sprint")) == 1
    assert len(aux.fetch_with_children(aux_session)["entries"]) == 1
    assert len(sprints.fetch_with_children(sprint_session)["auxiliary_entries"]) == 1
    assert sprints.get(sprint_session)["updated_at"] is not None


def test_entry_preconditions(repos):
    aux, _ = repos
    with pytest.raises(NotFoundError):
        aux.add_entry("missing", "general", "Core", "sets", 3)
    sid = aux.create("2024-03-03")
    with pytest.raises(ValidationError):
        aux.add_entry(sid, "general", "Core", "sets", 3, session_type="lift")
    with pytest.raises(ValidationError):
        aux.add_entry(sid, "general", "Core", "sets", 0)
    aux.complete(sid)
    with pytest.raises(PreconditionError):
        aux.add_entry(sid, "general", "Core", "sets", 3)


def test_delete_session_only_removes_its_entries(repos):
    aux, sprints = repos
    sid = aux.create("2024-03-03")
    sprint_session = sprints.create("2024-03-03")
    entry = aux.add_entry(sid, "general", "Core", "sets", 3)
    aux.add_entry(sprint_session, "wicket_runs", "Wickets", "reps", 6, session_type="sprint")
    aux.delete(sid)
    assert aux.get_record("auxiliary_entries", entry) is None
    assert len(aux.entries_for_session(sprint_session, "sprint")) == 1
    aux.delete_entry(entry)
