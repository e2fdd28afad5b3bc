"""
Resume-time computation for delay nodes.

Supported ``delayType`` values:
    period       delayAmount + delayUnit (Seconds, Minutes, Hours, Days, Weeks)
    timeOfDay    "HH:MM" today if still ahead, otherwise tomorrow
    dateAndTime  specificDateTime (ISO-8601, naive values are UTC)
    dayOfWeek    daysOfWeek {"Mon": true, ...}, next allowed day at 12:00
Anything else (including customField) falls back to the default delay.
All times are UTC.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta, timezone

from autoflow.config import settings
from autoflow.engine.errors import DelayError
from autoflow.engine.models import utcnow


UNIT_SECONDS = {
    "second": 1,
    "minute": 60,
    "hour": 3600,
    "day": 86400,
    "week": 7 * 86400,
}

WEEKDAYS = {"mon": 0, "tue": 1, "wed": 2, "thu": 3, "fri": 4, "sat": 5, "sun": 6}

DAY_OF_WEEK_HOUR = 12


def _unit_seconds(unit: Any) -> int:
    if not isinstance(unit, str):
        raise DelayError("delayUnit must be a string")
    key = unit.strip().lower().rstrip("s")
    if key not in UNIT_SECONDS:
        raise DelayError(f"Unknown delayUnit '{unit}'")
    return UNIT_SECONDS[key]


def _period(params: Dict[str, Any], now: datetime) -> datetime:
    try:
        amount = int(params.get("delayAmount"))
    except (TypeError, ValueError):
        raise DelayError(f"delayAmount must be an integer, got {params.get('delayAmount')!r}")
    if amount < 0:
        raise DelayError("delayAmount cannot be negative")
    return now + timedelta(seconds=amount * _unit_seconds(params.get("delayUnit")))


def _time_of_day(params: Dict[str, Any], now: datetime) -> datetime:
    raw = params.get("timeOfDay")
    try:
        hour, minute = (int(part) for part in str(raw).split(":"))
        resume = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    except ValueError:
        raise DelayError(f"timeOfDay must be HH:MM, got {raw!r}")
    if resume <= now:
        resume += timedelta(days=1)
    return resume


def _date_and_time(params: Dict[str, Any]) -> datetime:
    raw = params.get("specificDateTime")
    if not isinstance(raw, str):
        raise DelayError("specificDateTime must be an ISO-8601 string")
    try:
        resume = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise DelayError(f"specificDateTime is not ISO-8601: {raw!r}")
    if resume.tzinfo is None:
        resume = resume.replace(tzinfo=timezone.utc)
    return resume.astimezone(timezone.utc)


def _allowed_days(params: Dict[str, Any]) -> List[int]:
    days = params.get("daysOfWeek") or {}
    if not isinstance(days, dict):
        raise DelayError("daysOfWeek must be a mapping of day name to bool")
    allowed = []
    for name, enabled in days.items():
        key = str(name).strip().lower()[:3]
        if key not in WEEKDAYS:
            raise DelayError(f"Unknown day '{name}' in daysOfWeek")
        if enabled:
            allowed.append(WEEKDAYS[key])
    return allowed


def _day_of_week(params: Dict[str, Any], now: datetime) -> Optional[datetime]:
    allowed = _allowed_days(params)
    if not allowed:
        return None
    # Eight days covers "today, but noon has passed" landing on next week
    for offset in range(8):
        candidate = (now + timedelta(days=offset)).replace(
            hour=DAY_OF_WEEK_HOUR, minute=0, second=0, microsecond=0
        )
        if candidate.weekday() in allowed and candidate > now:
            return candidate
    return None


def compute_resume_at(
    params: Dict[str, Any],
    now: Optional[datetime] = None,
    default_minutes: Optional[int] = None,
) -> datetime:
    """
    Compute when a run suspended at a delay node should resume.

    Raises:
        DelayError: If the parameters for the chosen delay type are malformed
    """
    now = now or utcnow()
    default = timedelta(
        minutes=settings.DEFAULT_DELAY_MINUTES if default_minutes is None else default_minutes
    )
    delay_type = params.get("delayType")

    if delay_type == "period":
        return _period(params, now)
    if delay_type == "timeOfDay":
        return _time_of_day(params, now)
    if delay_type == "dateAndTime":
        return _date_and_time(params)
    if delay_type == "dayOfWeek":
        return _day_of_week(params, now) or now + default
    return now + default


def validate_delay_params(params: Dict[str, Any]) -> List[str]:
    """
    Check delay parameters without scheduling anything.

    Returns:
        List of validation errors (empty if valid)
    """
    try:
        compute_resume_at(params)
    except DelayError as e:
        return [str(e)]
    return []
