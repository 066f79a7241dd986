""" Loose value coercion shared by templates, conditions and steps.

Workflow documents are authored in a browser editor, so config values follow
JavaScript conventions: numbers are parsed leniently, ``true``/``false`` are
lowercase and objects are rendered as compact JSON.
"""

import json
import math
import re
import unicodedata
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional

_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")
_DATE_FORMATS = ("%Y/%m/%d", "%m/%d/%Y", "%Y/%m/%d %H:%M:%S", "%d %b %Y", "%b %d, %Y", "%B %d, %Y")


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def stringify(value: Any) -> str:
    """ Render a value the way the editor displays it; ``None`` becomes ``""``. """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    return str(value)


def parse_float(value: Any) -> float:
    """ Leading-number parse; NaN when nothing numeric is found. """
    if is_number(value):
        return float(value)
    if value is None or isinstance(value, bool):
        return math.nan
    text = str(value)
    stripped = text.strip()
    if stripped in ("Infinity", "+Infinity"):
        return math.inf
    if stripped == "-Infinity":
        return -math.inf
    match = _FLOAT_PREFIX.match(text)
    if not match:
        return math.nan
    return float(match.group(1))


def parse_int(value: Any) -> Optional[int]:
    """ Leading-integer parse; ``None`` when nothing numeric is found. """
    if is_number(value):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return int(value)
    if value is None or isinstance(value, bool):
        return None
    match = _INT_PREFIX.match(str(value))
    return int(match.group(1)) if match else None


def is_finite(number: float) -> bool:
    return not (math.isnan(number) or math.isinf(number))


def parse_date(value: Any) -> Optional[datetime]:
    """
    Parse a date-ish value into an aware UTC datetime.

    Numbers are epoch milliseconds. Strings may be ISO 8601, RFC 2822 or a
    handful of common calendar formats. Returns ``None`` for anything else.
    """
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if is_number(value):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    iso = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        parsed = datetime.fromisoformat(iso)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    except ValueError:
        pass

    try:
        parsed = parsedate_to_datetime(text)
        if parsed is not None:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    except (TypeError, ValueError):
        pass

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def to_epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def iso_format(moment: datetime) -> str:
    """ ISO 8601 in UTC with millisecond precision and a ``Z`` suffix. """
    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def _strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def collation_key(text: str):
    """
    Sort key approximating the editor's locale comparison: letters compare
    case- and accent-insensitively first, then accented after plain, then
    lowercase before uppercase (``apple < Apple < banana``).
    """
    folded = text.casefold()
    return _strip_accents(folded), folded, text.swapcase()


def locale_compare(left: str, right: str) -> int:
    lkey, rkey = collation_key(left), collation_key(right)
    return (lkey > rkey) - (lkey < rkey)
