# utils/time.py
from datetime import datetime, timezone

def utc_ms() -> int:
    return int(datetime.now(tz=timezone.utc).timestamp() * 1000)

def utc_iso() -> str:
    """ISO8601 UTC timestamp with millisecond precision, e.g. 2024-01-01T00:00:00.000Z"""
    return datetime.now(tz=timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")

def parse_duration(d: str) -> float:
    """'500ms' / '30s' / '5m' -> seconds"""
    if d.endswith("ms"):
        return int(d[:-2]) / 1000
    if d.endswith("s"):
        return float(d[:-1])
    if d.endswith("m"):
        return float(d[:-1]) * 60
    raise ValueError(f"unknown duration: {d}")
