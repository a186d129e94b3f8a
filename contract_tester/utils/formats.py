# contract_tester/utils/formats.py
# String format checks for the formats the validator knows about
# Unknown formats are accepted as-is

import base64
import binascii
import ipaddress
import math
import re
import uuid
from datetime import date, datetime
from functools import lru_cache
from typing import Callable, Optional
from urllib.parse import urlparse

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_HOSTNAME_RE = re.compile(r"^(?=.{1,253}$)([A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?)(\.[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*$")
_TIME_RE = re.compile(r"^\d{2}:\d{2}:\d{2}(\.\d+)?(Z|[+-]\d{2}:\d{2})?$", re.IGNORECASE)


def _is_date_time(value: str) -> bool:
    # fromisoformat rejects "Z" before 3.11
    candidate = value[:-1] + "+00:00" if value[-1:] in ("Z", "z") else value
    if "T" not in candidate.upper():
        return False
    try:
        datetime.fromisoformat(candidate)
    except ValueError:
        return False
    return True


def _is_date(value: str) -> bool:
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return len(value) == 10


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return len(value) == 36


def _is_ipv4(value: str) -> bool:
    try:
        ipaddress.IPv4Address(value)
    except ValueError:
        return False
    return True


def _is_ipv6(value: str) -> bool:
    try:
        ipaddress.IPv6Address(value)
    except ValueError:
        return False
    return True


def _is_uri(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme) and bool(parsed.netloc or parsed.path)


def _is_byte(value: str) -> bool:
    try:
        base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return False
    return True


def _is_numeric(value: str) -> bool:
    return parse_numeric_string(value) is not None


FORMAT_CHECKS: dict[str, Callable[[str], bool]] = {
    "date-time": _is_date_time,
    "date": _is_date,
    "time": lambda v: bool(_TIME_RE.match(v)),
    "uuid": _is_uuid,
    "email": lambda v: bool(_EMAIL_RE.match(v)),
    "hostname": lambda v: bool(_HOSTNAME_RE.match(v)),
    "ipv4": _is_ipv4,
    "ipv6": _is_ipv6,
    "uri": _is_uri,
    "url": _is_uri,
    "byte": _is_byte,
    "decimal": _is_numeric,
    "numeric-string": _is_numeric,
    "int64-string": _is_numeric,
}


def check_format(fmt: Optional[str], value: str) -> bool:
    """True if `value` satisfies `fmt` (or `fmt` is unknown)."""
    if not fmt:
        return True
    check = FORMAT_CHECKS.get(fmt)
    return check is None or check(value)


def parse_numeric_string(value: str) -> Optional[float]:
    """Parse a decimal numeric string; None for anything else (no nan/inf).

    Plain integers stay `int` so that values beyond float range keep their
    magnitude; everything else must fit a finite float.
    """
    text = value.strip()
    if not re.fullmatch(r"[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?", text):
        return None
    if re.fullmatch(r"[+-]?\d+", text):
        try:
            return int(text)
        except ValueError:
            # more digits than int() accepts from a string
            return None
    number = float(text)
    return number if math.isfinite(number) else None


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> re.Pattern:
    """Cached compile; raises re.error for invalid expressions."""
    return re.compile(pattern)
