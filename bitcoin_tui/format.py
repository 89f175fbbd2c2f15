import json
import time
from datetime import datetime, timezone

PLACEHOLDER = "-"

# getpeerinfo connection_type values, shortened for the peer table.
CONNECTION_TYPES = {
    "outbound-full-relay": "full",
    "block-relay-only": "block",
    "inbound": "in",
    "manual": "manual",
    "addr-fetch": "addr",
    "feeler": "feeler",
}


def format_optional(value: object, empty: str = PLACEHOLDER) -> str:
    if value is None:
        return empty
    if isinstance(value, str) and not value.strip():
        return empty
    return str(value)


def format_bool(value: object) -> str:
    if value is None:
        return PLACEHOLDER
    return "yes" if bool(value) else "no"


def format_number(value: object) -> str:
    try:
        return f"{int(value):,}"
    except (TypeError, ValueError):
        return PLACEHOLDER


def _scaled(value: object, base: float, units: list[str], precision: int = 2) -> str:
    try:
        size = float(value)
    except (TypeError, ValueError):
        return PLACEHOLDER
    unit_index = 0
    while size >= base and unit_index < len(units) - 1:
        size /= base
        unit_index += 1
    if unit_index == 0:
        return f"{size:.0f} {units[0]}"
    return f"{size:.{precision}f} {units[unit_index]}"


def format_bytes(value: object) -> str:
    return _scaled(value, 1024, ["B", "KB", "MB", "GB", "TB"], precision=1)


def format_hashrate(value: object) -> str:
    return _scaled(value, 1000, ["H/s", "KH/s", "MH/s", "GH/s", "TH/s", "PH/s", "EH/s", "ZH/s"], precision=1)


def format_weight(value: object) -> str:
    return _scaled(value, 1000, ["WU", "KWU", "MWU"], precision=1)


def format_difficulty(value: object) -> str:
    try:
        d = float(value)
    except (TypeError, ValueError):
        return PLACEHOLDER
    for scale, suffix in ((1e18, "E"), (1e15, "P"), (1e12, "T"), (1e9, "G"), (1e6, "M")):
        if d >= scale:
            return f"{d / scale:.2f} {suffix}"
    return f"{d:.2f}"


def format_sat_vb(btc_per_kvb: object) -> str:
    """Fee rate in BTC/kvB as the node reports it, shown in sat/vB."""
    try:
        rate = float(btc_per_kvb) * 100_000
    except (TypeError, ValueError):
        return PLACEHOLDER
    return f"{rate:.2f} sat/vB"


def format_btc(value: object) -> str:
    try:
        return f"{float(value):.8f} BTC"
    except (TypeError, ValueError):
        return PLACEHOLDER


def format_percent(fraction: object) -> str:
    try:
        return f"{float(fraction) * 100:.2f}%"
    except (TypeError, ValueError):
        return PLACEHOLDER


def format_duration(value: object) -> str:
    try:
        secs = int(float(value))
    except (TypeError, ValueError):
        return PLACEHOLDER
    if secs < 0:
        return PLACEHOLDER
    if secs >= 86400:
        return f"{secs // 86400}d {(secs % 86400) // 3600}h"
    if secs >= 3600:
        return f"{secs // 3600}h {(secs % 3600) // 60}m"
    if secs >= 60:
        return f"{secs // 60}m {secs % 60}s"
    return f"{secs}s"


def format_relative_time(timestamp: object, now: float | None = None) -> str:
    try:
        ts = int(float(timestamp))
    except (TypeError, ValueError):
        return PLACEHOLDER
    if ts <= 0:
        return PLACEHOLDER
    if now is None:
        now = time.time()
    if now > ts:
        return f"{format_duration(now - ts)} ago"
    return "just now"


def format_timestamp(value: object) -> str:
    try:
        ts = int(float(value))
    except (TypeError, ValueError):
        return PLACEHOLDER
    if ts <= 0:
        return PLACEHOLDER
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def format_ping(seconds: object) -> str:
    try:
        return f"{float(seconds) * 1000:.0f} ms"
    except (TypeError, ValueError):
        return PLACEHOLDER


def short_hash(value: object, length: int = 12) -> str:
    if not isinstance(value, str) or not value:
        return PLACEHOLDER
    if len(value) <= length * 2 + 1:
        return value
    return f"{value[:length]}…{value[-length:]}"


def connection_type(value: object) -> str:
    if not isinstance(value, str):
        return PLACEHOLDER
    return CONNECTION_TYPES.get(value, value)


def format_json(value: object) -> str:
    """Pretty JSON for result panes; bare strings are shown without quotes."""
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, ensure_ascii=False)
