from .ids import new_handle_id, new_uuid, ref_counter
from .keys import camelize_keys, to_camel
from .time import normalize_dt, now_utc, parse_rfc3339

__all__ = [
    "new_uuid",
    "new_handle_id",
    "ref_counter",
    "to_camel",
    "camelize_keys",
    "now_utc",
    "parse_rfc3339",
    "normalize_dt",
]
