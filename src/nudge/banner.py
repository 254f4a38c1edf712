"""Startup banner — mode-aware status output.

Prints a short startup banner with timing and status indicators.
Detects ``NO_COLOR`` / ``TERM`` for safe fallback.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from nudge.config import NudgeConfig


# ---------------------------------------------------------------------------
# ANSI helpers: respect NO_COLOR (https://no-color.org)
# ---------------------------------------------------------------------------

def _supports_color() -> bool:
    """Return True if the terminal supports ANSI colors."""
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("TERM") == "dumb":
        return False
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()


_COLOR = _supports_color()

_RESET = "\033[0m" if _COLOR else ""
_BOLD = "\033[1m" if _COLOR else ""
_DIM = "\033[2m" if _COLOR else ""
_CYAN = "\033[36m" if _COLOR else ""
_GREEN = "\033[32m" if _COLOR else ""
_YELLOW = "\033[33m" if _COLOR else ""


# ---------------------------------------------------------------------------
# Mode badges
# ---------------------------------------------------------------------------

_MODE_STYLES: dict[str, tuple[str, str]] = {
    "watch": (_GREEN, "watch"),
    "trigger": (_YELLOW, "trigger"),
    "plan": (_CYAN, "plan"),
}


def _mode_badge(mode: str) -> str:
    """Return a styled [mode] badge."""
    color, label = _MODE_STYLES.get(mode, (_DIM, mode))
    return f"{color}[{label}]{_RESET}"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def print_banner(
    config: NudgeConfig,
    source_count: int,
    consumer_count: int,
    mode: str,
    *,
    indexed: int = 0,
    load_ms: float = 0.0,
    warnings: list[str] | None = None,
) -> None:
    """Print the Nudge startup banner to stderr.

    Args:
        config: Resolved NudgeConfig.
        source_count: Number of Sources found.
        consumer_count: Number of Consumers found.
        mode: One of ``"watch"``, ``"trigger"``, ``"plan"``.
        indexed: Number of Consumers indexed under a watched Source.
        load_ms: Time spent loading manifests in milliseconds.
        warnings: Optional list of warning messages to display.

    """
    from nudge import __version__

    badge = _mode_badge(mode)
    header = f"  {_BOLD}{_CYAN}>>{_RESET}  Nudge {_DIM}v{__version__}{_RESET}  {badge}"

    lines: list[str] = [
        "",
        header,
        f"  {_DIM}{'─' * 43}{_RESET}",
    ]

    timing = f" {_DIM}in {load_ms:.0f}ms{_RESET}" if load_ms > 0 else ""
    kinds = ", ".join(config.source_kinds)
    lines.append(
        f"  {_DIM}├─{_RESET} {_plural(source_count, 'source')} "
        f"{_DIM}({kinds}){_RESET} loaded{timing}"
    )
    lines.append(
        f"  {_DIM}├─{_RESET} {_plural(consumer_count, 'consumer')} "
        f"{_DIM}({config.consumer_kind}){_RESET}, {indexed} indexed"
    )
    lines.append(f"  {_DIM}├─{_RESET} manifests: {_DIM}{config.manifests_path}{_RESET}")
    lines.append(f"  {_DIM}└─{_RESET} annotation: {_DIM}{config.annotation_key}{_RESET}")

    if mode == "watch":
        lines.append("")
        lines.append(f"  {_DIM}Watching for revision changes...{_RESET}")

    if warnings:
        lines.append("")
        lines.extend(f"  {_YELLOW}!{_RESET} {w}" for w in warnings)

    lines.append("")

    print("\n".join(lines), file=sys.stderr)
