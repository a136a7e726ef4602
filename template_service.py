from __future__ import annotations
from typing import List, Optional

from loguru import logger

from db import LiftRepository, SprintRepository, TemplateRepository
from validation import NotFoundError, ValidationError

# Structural rep fields kept in a sprint template; outcomes are left behind.
SPRINT_TEMPLATE_FIELDS = ("distance", "timing_type", "rest_after", "is_fly", "fly_in_distance")


class TemplateService:
    """Turns completed sessions into templates and templates into new sessions."""

    def __init__(
        self,
        template_repo: TemplateRepository,
        sprint_repo: SprintRepository,
        lift_repo: LiftRepository,
    ) -> None:
        self.templates = template_repo
        self.sprints = sprint_repo
        self.lifts = lift_repo

    def _source(self, session_id: str) -> tuple[str, dict]:
        detail = self.sprints.fetch_with_children(session_id)
        if detail is not None:
            return "sprint", detail
        detail = self.lifts.fetch_with_children(session_id)
        if detail is not None:
            return "lift", detail
        raise NotFoundError("session not found")

    def snapshot(
        self, session_id: str, name: str, description: str | None = None
    ) -> str:
        """Store the structure of a sprint or lift session as a template.

        Times and velocities are outcomes and are not copied. A session
        without sets produces an empty template.
        """
        if not (name or "").strip():
            raise ValidationError(["Template name is required"])
        kind, detail = self._source(session_id)
        reps_by_set = detail["reps_by_set"]
        sets = []
        for source_set in detail["sets"]:
            reps = reps_by_set.for_parent(source_set["id"])
            if kind == "sprint":
                sets.append({
                    "name": source_set["name"],
                    "reps": [{field: rep[field] for field in SPRINT_TEMPLATE_FIELDS} for rep in reps],
                })
            else:
                sets.append({
                    "exercise": source_set["exercise"],
                    "load": source_set["load"],
                    "rep_count": len(reps),
                })
        template_id = self.templates.save(kind, name.strip(), description, sets)
        logger.info(f"Saved {kind} session {session_id} as template {template_id}")
        return template_id

    def materialize(self, template_id: str, date: str | None = None) -> str:
        """Create a new active session with the template's sets and no reps."""
        data = self.templates.fetch_with_data(template_id)
        if data is None:
            raise NotFoundError("template not found")
        repo = self.sprints if data["template"]["type"] == "sprint" else self.lifts
        return repo.start_from_template(data, date)

    def get_with_data(self, template_id: str) -> Optional[dict]:
        return self.templates.fetch_with_data(template_id)

    def list_templates(self, template_type: str | None = None) -> List[dict]:
        return self.templates.list_templates(template_type)

    def rename(
        self, template_id: str, name: str | None = None, description: str | None = None
    ) -> None:
        self.templates.update(template_id, name, description)

    def delete(self, template_id: str) -> None:
        self.templates.delete(template_id)
