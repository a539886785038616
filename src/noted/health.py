"""
Health check module for Noted.

Reports the state of the config file and the notes snapshot.
"""

from typing import Any

from noted.config import get_config_path, get_snapshot_path, load_config
from noted.errors import NotedError
from noted.persist import PersistenceService


def check_config() -> tuple[str, str]:
    """Check config file status."""
    config_path = get_config_path()
    if not config_path.exists():
        return "✓", "Defaults (no config.toml)"

    try:
        config = load_config()
        fmt = config.get("persist", {}).get("format", "?")
        return "✓", f"OK (format: {fmt})"
    except (OSError, ValueError) as e:
        return "✗", f"Error: {e}"


def check_snapshot() -> tuple[str, str]:
    """Check that the snapshot exists and decodes."""
    snapshot_path = get_snapshot_path()
    if not snapshot_path.exists():
        return "✓", "Empty (no snapshot yet)"

    try:
        persistence = PersistenceService.from_config()
        fmt = persistence.format_or_default(snapshot_path)
        snapshot = persistence.load(snapshot_path, dict[str, Any], fmt)
        return "✓", f"OK ({len(snapshot)} notes, {fmt.value})"
    except (NotedError, OSError, ValueError) as e:
        return "✗", f"Error: {e}"


def get_health_report() -> str:
    """Render all checks as aligned status lines."""
    checks = [
        ("Config", check_config()),
        ("Snapshot", check_snapshot()),
    ]

    lines = ["Noted Health", "-" * 30]
    for name, (symbol, message) in checks:
        lines.append(f"{symbol} {name:<10} {message}")
    return "\n".join(lines)
