from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from dateutil import parser as date_parser
from openpyxl.utils.datetime import from_excel

from moneytracker.config import settings

# dateutil and openpyxl raise these for out-of-range input
_PARSE_ERRORS = (ValueError, OverflowError, TypeError)


def local_date(moment: datetime, tz: str | None = None) -> date:
    """Calendar date of a timestamp in the ledger's time zone."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(tz or settings.TIMEZONE)).date()


def _parse_string(value: str) -> datetime:
    try:
        return date_parser.parse(value.strip())
    except _PARSE_ERRORS as e:
        raise ValueError(f"Invalid date: {value!r}") from e


def parse_calendar_date(value, tz: str | None = None) -> date:
    """
    Accepts dates, datetimes, Excel serial numbers and date strings such as
    "2025-01-05", "2025/1/5" or "2025-01-04T16:00:00.000Z". Timestamps with
    an offset are moved to the ledger's time zone before taking the date, so
    midnight saved by a browser in UTC+8 keeps its day.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.date()
        return local_date(value, tz)
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            moment = from_excel(value)
        except _PARSE_ERRORS as e:
            raise ValueError(f"Invalid date: {value!r}") from e
        # Serials below 1 come back as a bare time of day
        if isinstance(moment, datetime):
            return moment.date()
        raise ValueError(f"Invalid date: {value!r}")
    if isinstance(value, str) and value.strip():
        return parse_calendar_date(_parse_string(value), tz)
    raise ValueError(f"Invalid date: {value!r}")


def parse_timestamp(value) -> datetime:
    """Timestamps without an offset are taken as UTC."""
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str) and value.strip():
        moment = _parse_string(value)
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    try:
        return moment.astimezone(timezone.utc)
    except OverflowError as e:
        raise ValueError(f"Invalid timestamp: {value!r}") from e
