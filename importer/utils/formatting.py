"""Human-readable formatting helpers."""


def format_bytes(size: int) -> str:
    """1536 -> "1.5 KB"."""
    if not size or size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    value = float(size)
    unit_idx = 0
    while value >= 1024.0 and unit_idx < len(units) - 1:
        value /= 1024.0
        unit_idx += 1
    return f"{round(value, 1):g} {units[unit_idx]}"

