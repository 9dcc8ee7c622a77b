from .ts import from_timestamp_ms, to_timestamp_ms, utc_now

__all__ = [
    "from_timestamp_ms",
    "to_timestamp_ms",
    "utc_now",
]
