from typing import List, Literal, Optional

from pydantic import BaseModel, ValidationError, field_validator


class ConfigSchema(BaseModel):
    db_path: str = "accel.db"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    season_start_month: int = 8
    season_start_day: int = 1
    stagnation_weeks: int = 4
    enforce_single_active: bool = False

    @field_validator("season_start_month")
    @classmethod
    def _month(cls, value: int) -> int:
        if not 1 <= value <= 12:
            raise ValueError("season_start_month must be 1-12")
        return value

    @field_validator("season_start_day")
    @classmethod
    def _day(cls, value: int) -> int:
        if not 1 <= value <= 28:
            raise ValueError("season_start_day must be 1-28")
        return value

    @field_validator("stagnation_weeks")
    @classmethod
    def _weeks(cls, value: int) -> int:
        if value < 1:
            raise ValueError("stagnation_weeks must be positive")
        return value


class PreferencesSchema(BaseModel):
    favorite_distances: List[int] = [30, 40, 60, 100, 200]
    favorite_exercises: List[str] = [
        "Back Squat",
        "Power Clean",
        "Bench Press",
        "Deadlift",
    ]
    default_rest_time: int = 180
    default_timing_type: Literal["HAND", "FAT"] = "HAND"
    theme: Literal["dark", "light"] = "dark"
    haptic_feedback: bool = True


def validate_config(data: dict) -> ConfigSchema:
    try:
        return ConfigSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))


def validate_preferences(data: dict) -> PreferencesSchema:
    try:
        return PreferencesSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
