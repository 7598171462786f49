"""
Rich Output Utilities
=====================

Terminal output for the learnforge operator CLI using the Rich library.
One themed console, styled print helpers, and logging routed through Rich.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.rule import Rule
from rich.status import Status
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from learnforge.messaging import AuthorityResponse, Tone


# =============================================================================
# Color Scheme & Theme
# =============================================================================

@dataclass(frozen=True)
class LearnforgeColors:
    """Palette in hex for truecolor terminals."""
    ink: str = "#E6E6E6"       # primary text
    dim: str = "#9AA4B2"       # muted text
    ember: str = "#F97316"     # accent
    slate: str = "#94A3B8"     # keys, borders
    sky: str = "#38BDF8"       # info
    ok: str = "#22C55E"
    warn: str = "#FBBF24"
    err: str = "#EF4444"


def learnforge_theme(colors: LearnforgeColors = LearnforgeColors()) -> Theme:
    """
    Rich Theme with semantic style names:
      console.print("...", style="lf.ok")
    """
    return Theme(
        {
            "lf.accent": f"bold {colors.ember}",
            "lf.border": f"{colors.slate}",
            "lf.muted": f"{colors.dim}",
            "lf.text": f"{colors.ink}",

            "lf.ok": f"bold {colors.ok}",
            "lf.warn": f"bold {colors.warn}",
            "lf.err": f"bold {colors.err}",
            "lf.info": f"{colors.sky}",

            "lf.key": f"{colors.slate}",
            "lf.value": f"{colors.ink}",
            "lf.number": f"bold {colors.ember}",

            "lf.table.header": f"bold {colors.sky}",

            # Authority message tones
            "lf.tone.encouragement": f"bold {colors.ok}",
            "lf.tone.warning": f"bold {colors.warn}",
            "lf.tone.consequence": f"bold {colors.err}",
            "lf.tone.neutral": f"{colors.ink}",
        }
    )


console = Console(theme=learnforge_theme())


# =============================================================================
# Basic Message Functions
# =============================================================================

def print_success(message: str) -> None:
    console.print(f"[lf.ok]+ {message}[/]")


def print_error(message: str) -> None:
    console.print(f"[lf.err]x {message}[/]")


def print_warning(message: str) -> None:
    console.print(f"[lf.warn]! {message}[/]")


def print_info(message: str) -> None:
    console.print(f"[lf.info]i {message}[/]")


def print_muted(message: str) -> None:
    console.print(f"[lf.muted]{message}[/]")


def print_header(title: str, style: str = "lf.accent") -> None:
    """Print a section header between rule lines."""
    console.print()
    console.print(Rule(f"[{style}]{title}[/]", style=style))
    console.print()


# =============================================================================
# Data Display
# =============================================================================

def print_key_value_table(
    data: Dict[str, Any],
    *,
    title: Optional[str] = None,
    border_style: str = "lf.border",
) -> None:
    """Print key-value pairs, boxed when a title is given."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="lf.key")
    table.add_column("Value", style="lf.value")

    for key, value in data.items():
        table.add_row(key, "-" if value is None else str(value))

    if title:
        console.print(Panel(table, title=f"[bold]{title}[/]", border_style=border_style))
    else:
        console.print(table)


def create_table(
    *,
    title: Optional[str] = None,
    columns: Optional[List[str]] = None,
    border_style: str = "lf.border",
    header_style: str = "lf.table.header",
) -> Table:
    """Create a styled Rich Table."""
    table = Table(
        title=title,
        header_style=header_style,
        border_style=border_style,
        title_style="lf.accent",
    )
    for col in columns or []:
        table.add_column(col)
    return table


def print_table(table: Table) -> None:
    console.print(table)


def print_error_panel(message: str, title: str = "Error") -> None:
    console.print(Panel(
        Text(message, style="lf.err"),
        title=f"[lf.err]{title}[/]",
        border_style="lf.err",
        padding=(1, 2),
    ))


def print_authority(response: AuthorityResponse, *, title: Optional[str] = None) -> None:
    """Render an authority message in its tone's colour."""
    style = f"lf.tone.{response.tone.value}"
    body = Text(response.message, style=style)
    if response.action_required:
        body.append(f"\n\n{response.action_required}", style="lf.muted")

    border = "lf.border" if response.tone == Tone.NEUTRAL else style
    console.print(Panel(body, title=title, border_style=border, padding=(1, 2)))


# =============================================================================
# Progress
# =============================================================================

@contextmanager
def spinner(message: str, *, style: str = "lf.accent") -> Iterator[Status]:
    """
    Show a spinner while a block runs.

    Usage:
        with spinner("Checking inactivity..."):
            await engine.check_inactivity(user_id)
    """
    with console.status(f"[{style}]{message}[/]", spinner="dots") as status:
        yield status


# =============================================================================
# Logging Integration
# =============================================================================

def setup_rich_logging(level: int = logging.INFO) -> None:
    """
    Route Python logging through Rich.

    Usage:
        setup_rich_logging()
        logging.getLogger("learnforge").info("Ready")
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(
            console=console,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
        )],
    )
