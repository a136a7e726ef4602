import datetime
import time
import uuid
from typing import Optional


def generate_id() -> str:
    """Return a new opaque record identifier."""
    return uuid.uuid4().hex


def now_ms() -> int:
    """Return the current time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def today() -> str:
    return datetime.date.today().isoformat()


class TimeTools:
    """Calendar helpers used for weekly aggregation and season boundaries."""

    @staticmethod
    def to_date(value: str | datetime.date) -> datetime.date:
        if isinstance(value, datetime.date):
            return value
        return datetime.date.fromisoformat(value)

    @staticmethod
    def week_start(value: str | datetime.date) -> datetime.date:
        """Return the Monday of the ISO week containing ``value``."""
        day = TimeTools.to_date(value)
        return day - datetime.timedelta(days=day.weekday())

    @staticmethod
    def season_start(
        now: Optional[datetime.date] = None, month: int = 8, day: int = 1
    ) -> datetime.date:
        """Return the start of the most recently started season."""
        now = now or datetime.date.today()
        start = datetime.date(now.year, month, day)
        if now < start:
            start = datetime.date(now.year - 1, month, day)
        return start

    @staticmethod
    def ms_to_date(ms: int) -> str:
        return datetime.datetime.fromtimestamp(ms / 1000).date().isoformat()

    @staticmethod
    def date_to_ms(value: str | datetime.date) -> int:
        """Return local midnight of ``value`` as epoch milliseconds."""
        day = TimeTools.to_date(value)
        dt = datetime.datetime(day.year, day.month, day.day)
        return int(dt.timestamp() * 1000)


class InputParser:
    """Parses and formats the short numeric inputs typed during a session."""

    @staticmethod
    def parse_time(text: str) -> Optional[float]:
        """Parse a sprint time.

        Digits without a decimal point are read as hundredths, so ``"482"``
        becomes ``4.82`` and ``"1050"`` becomes ``10.50``.
        """
        text = (text or "").strip()
        if not text:
            return None
        try:
            if "." in text:
                value = float(text)
            elif text.isdigit():
                value = int(text) / 100
            else:
                return None
        except ValueError:
            return None
        return value if value > 0 else None

    @staticmethod
    def format_time(seconds: Optional[float]) -> str:
        if seconds is None:
            return "--"
        return f"{seconds:.2f}"

    @staticmethod
    def parse_rest(text: str) -> Optional[int]:
        """Parse ``"m:ss"`` or plain seconds into seconds."""
        text = (text or "").strip()
        if not text:
            return None
        if ":" in text:
            minutes, _, seconds = text.partition(":")
            if not minutes.isdigit() or not seconds.isdigit():
                return None
            return int(minutes) * 60 + int(seconds)
        if not text.isdigit():
            return None
        return int(text)

    @staticmethod
    def format_rest(seconds: int) -> str:
        minutes, secs = divmod(int(seconds), 60)
        return f"{minutes}:{secs:02d}"

    @staticmethod
    def parse_wind(text: str) -> Optional[float]:
        text = (text or "").strip()
        if not text:
            return None
        try:
            return float(text)
        except ValueError:
            return None

    @staticmethod
    def format_wind(wind: Optional[float]) -> str:
        if wind is None:
            return "NWI"
        sign = "+" if wind > 0 else ""
        return f"{sign}{wind:.1f}"
