import re
from typing import Union

# e.g., "20s", "5m", "1h30m", "2d3h", "90m", "  2h  ", "1.5"
DURATION_RE = re.compile(r"(?i)^\s*(?:(\d+)\s*d)?\s*(?:(\d+)\s*h)?\s*(?:(\d+)\s*m)?\s*(?:(\d+)\s*s)?\s*$")


def parse_duration(value: Union[str, int, float]) -> float:
    """
    Parse durations like '20s', '5m', '1h30m', '2d3h' or a plain number of seconds.
    Returns total seconds (float). Raises ValueError on bad input or zero.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = float(value)
    else:
        text = str(value).strip()
        if not text:
            raise ValueError("Empty duration")
        try:
            seconds = float(text)
        except ValueError:
            m = DURATION_RE.match(text)
            if not m or not any(m.groups()):
                raise ValueError(f"Invalid duration: {value!r}") from None
            d, h, mi, s = (int(x) if x else 0 for x in m.groups())
            seconds = float(d * 86400 + h * 3600 + mi * 60 + s)

    if seconds <= 0:
        raise ValueError(f"Duration must be positive: {value!r}")
    return seconds
