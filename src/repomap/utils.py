"""Utility functions for repomap."""

from datetime import datetime, timezone


def humanize_size(size: float) -> str:
    """Convert bytes to human-readable format."""
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024.:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


def get_iso_timestamp() -> str:
    """Get current UTC timestamp in ISO 8601 format."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def format_iso_date(iso_string: str) -> str:
    """Clean up ISO 8601 timestamp for display.

    Examples:
        >>> format_iso_date("2026-10-18T09:15:02.123456Z")
        '2026-10-18 09:15:02'
    """
    if not iso_string:
        return ""
    return iso_string.replace("T", " ").split(".", 1)[0].rstrip("Z")
