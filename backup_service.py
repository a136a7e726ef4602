from __future__ import annotations
import datetime
import json
from typing import Callable, Dict, List, Union

from loguru import logger

from db import SCHEMA_VERSION, BaseRepository
from validation import BackupFormatError, StorageError

BACKUP_FORMAT_VERSION = "1.0"

# Tables that older snapshots do not contain (auxiliary before schema 4,
# sequence counters before schema 6).
OPTIONAL_TABLES = ("auxiliary_sessions", "auxiliary_entries", "sequence_counters")


class BackupService:
    """Full-dataset export and all-or-nothing import."""

    def __init__(self, repo: BaseRepository) -> None:
        self.repo = repo

    def export_all_data(self) -> dict:
        data = self.repo.dump_tables()
        logger.info(f"Exported {sum(len(rows) for rows in data.values())} records")
        return {
            "version": BACKUP_FORMAT_VERSION,
            "exported_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
            "schema_version": SCHEMA_VERSION,
            "data": data,
        }

    def validate_backup(self, backup) -> dict:
        """Collect every problem with ``backup`` without touching the store."""
        errors: List[str] = []
        warnings: List[str] = []
        if not isinstance(backup, dict):
            return {"is_valid": False, "errors": ["Backup must be a JSON object"], "warnings": []}
        for key in ("version", "exported_at", "data"):
            if key not in backup:
                errors.append(f"Missing required field: {key}")
        schema_version = backup.get("schema_version")
        if schema_version is not None:
            if not isinstance(schema_version, int):
                errors.append("schema_version must be an integer")
            elif schema_version > SCHEMA_VERSION:
                warnings.append(
                    f"Backup is from a newer schema version ({schema_version} > {SCHEMA_VERSION})"
                )
        data = backup.get("data")
        if "data" in backup and not isinstance(data, dict):
            errors.append("data must be an object")
            data = None
        if isinstance(data, dict):
            for table in self.repo.table_names():
                if table not in data:
                    if table in OPTIONAL_TABLES:
                        warnings.append(f"Missing table {table}; it will be empty")
                    else:
                        errors.append(f"Missing table: {table}")
                    continue
                rows = data[table]
                if not isinstance(rows, list):
                    errors.append(f"Table {table} must be an array")
                    continue
                bad = [i for i, row in enumerate(rows) if not isinstance(row, dict) or "id" not in row]
                if bad:
                    errors.append(f"Table {table} has {len(bad)} records without an id")
            for table in data:
                if table not in self.repo.table_names():
                    warnings.append(f"Unknown table {table} will be ignored")
        return {"is_valid": not errors, "errors": errors, "warnings": warnings}

    def import_all_data(
        self, backup: dict, confirm: Union[bool, Callable[[dict], bool]] = False
    ) -> dict:
        """Replace the whole store with ``backup``.

        ``confirm`` is either a flag or a callable receiving the validation
        report; nothing is written unless it approves.
        """
        report = self.validate_backup(backup)
        if not report["is_valid"]:
            logger.warning(f"Rejected backup: {report['errors']}")
            raise BackupFormatError(report["errors"])
        for warning in report["warnings"]:
            logger.warning(warning)
        approved = confirm(report) if callable(confirm) else confirm
        if not approved:
            return {"success": False, "counts": {}, "error": "Import not confirmed"}
        tables: Dict[str, list] = {
            table: backup["data"].get(table, []) for table in self.repo.table_names()
        }
        try:
            counts = self.repo.replace_all(tables)
        except StorageError as e:
            return {"success": False, "counts": {}, "error": str(e)}
        logger.info(f"Imported {sum(counts.values())} records")
        return {"success": True, "counts": counts, "error": None}

    def save(self, path: str) -> dict:
        backup = self.export_all_data()
        with open(path, "w", encoding="utf-8") as f:
            json.dump(backup, f, indent=2)
        return backup

    @staticmethod
    def load(path: str) -> dict:
        with open(path, "r", encoding="utf-8") as f:
            try:
                return json.load(f)
            except json.JSONDecodeError as e:
                raise BackupFormatError([f"Invalid JSON: {e}"]) from e
