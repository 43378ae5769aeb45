"""Parsing of FTP directory listings into BackendEntry values.

``MLSD`` (RFC 3659) is preferred because its facts are machine readable.
Servers that do not implement it get a ``LIST`` fallback, which understands
the two formats found in practice: Unix ``ls -l`` and MS-DOS/IIS.
"""

import re
from datetime import datetime, timezone

import structlog

from ftp_s3_gateway.models import BackendEntry

logger = structlog.get_logger()

_MONTHS = {
    name: index
    for index, name in enumerate(
        ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"],
        start=1,
    )
}

_UNIX_LINE = re.compile(
    r"^(?P<mode>[-dlbcps][-rwxsStTl]{9})[+@.]?\s+"
    r"\d+\s+"
    r"(?:\S+\s+){1,2}"  # owner, optional group
    r"(?P<size>\d+)\s+"
    r"(?P<month>[A-Za-z]{3})\s+"
    r"(?P<day>\d{1,2})\s+"
    r"(?P<time_or_year>\d{1,2}:\d{2}|\d{4})\s"
    r"(?P<name>.+)$"
)

_DOS_LINE = re.compile(
    r"^(?P<date>\d{2}-\d{2}-\d{2,4})\s+"
    r"(?P<time>\d{1,2}:\d{2}\s*(?:AM|PM)?)\s+"
    r"(?P<size><DIR>|\d+)\s+"
    r"(?P<name>.+)$",
    re.IGNORECASE,
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def parse_mlsd_modify(value: str | None) -> datetime:
    """Parse an MLSD ``modify`` fact (``YYYYMMDDHHMMSS[.sss]``, always UTC)."""
    if not value:
        return _EPOCH
    try:
        return datetime.strptime(value.split(".")[0], "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)
    except ValueError:
        logger.debug("mlsd_modify_unparseable", value=value)
        return _EPOCH


def entry_from_mlsd(name: str, facts: dict[str, str]) -> BackendEntry | None:
    """Build an entry from one MLSD row; returns None for ``cdir``/``pdir`` rows."""
    entry_type = facts.get("type", "file").lower()
    if entry_type in ("cdir", "pdir") or name in (".", ".."):
        return None

    size_fact = facts.get("size") or facts.get("sizd") or "0"
    try:
        size = max(int(size_fact), 0)
    except ValueError:
        size = 0

    return BackendEntry(
        name=name,
        size=size,
        modified_at=parse_mlsd_modify(facts.get("modify")),
        is_directory=entry_type == "dir",
    )


def _unix_timestamp(month: str, day: str, time_or_year: str, now: datetime) -> datetime:
    month_number = _MONTHS.get(month.lower())
    if month_number is None:
        return _EPOCH

    try:
        if ":" in time_or_year:
            hour, minute = (int(part) for part in time_or_year.split(":"))
            stamp = datetime(now.year, month_number, int(day), hour, minute, tzinfo=timezone.utc)
            # ls prints HH:MM for the last six months; a date ahead of now belongs to last year
            if (stamp - now).days > 1:
                stamp = stamp.replace(year=now.year - 1)
            return stamp
        return datetime(int(time_or_year), month_number, int(day), tzinfo=timezone.utc)
    except ValueError:
        return _EPOCH


def _dos_timestamp(date: str, time: str) -> datetime:
    time = time.replace(" ", "").upper()
    for date_format in ("%m-%d-%y", "%m-%d-%Y"):
        for time_format in ("%I:%M%p", "%H:%M"):
            try:
                parsed = datetime.strptime(f"{date} {time}", f"{date_format} {time_format}")
            except ValueError:
                continue
            return parsed.replace(tzinfo=timezone.utc)
    return _EPOCH


def parse_list_line(line: str, now: datetime | None = None) -> BackendEntry | None:
    """Parse one ``LIST`` output line.

    Returns None for lines that carry no entry (``total N`` headers, blank
    lines, ``.``/``..`` rows, unrecognized formats).
    """
    line = line.rstrip("\r\n")
    if not line.strip() or line.lower().startswith("total "):
        return None

    now = now or datetime.now(timezone.utc)

    match = _UNIX_LINE.match(line)
    if match:
        mode = match.group("mode")
        name = match.group("name")
        if mode.startswith("l") and " -> " in name:
            name = name.split(" -> ", 1)[0]
        if name in (".", ".."):
            return None
        return BackendEntry(
            name=name,
            size=int(match.group("size")),
            modified_at=_unix_timestamp(
                match.group("month"), match.group("day"), match.group("time_or_year"), now
            ),
            is_directory=mode.startswith("d"),
        )

    match = _DOS_LINE.match(line)
    if match:
        name = match.group("name")
        if name in (".", ".."):
            return None
        is_directory = match.group("size").upper() == "<DIR>"
        return BackendEntry(
            name=name,
            size=0 if is_directory else int(match.group("size")),
            modified_at=_dos_timestamp(match.group("date"), match.group("time")),
            is_directory=is_directory,
        )

    logger.debug("list_line_unrecognized", line=line)
    return None
