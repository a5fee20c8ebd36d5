"""Terminal output helpers shared by the API launcher and the CLI client."""

from enum import Enum
from typing import (
    Any,
    Iterable,
    Mapping,
)


class AnsiColors(Enum):
    """ANSI color codes for terminal output."""

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"
    GREY = "\033[90m"


RESET = "\033[0m"

# Final request status -> color of the reply
STATUS_COLORS: Mapping[str, AnsiColors] = {
    "DONE": AnsiColors.YELLOW,
    "CLARIFICATION_EXIT": AnsiColors.BLUE,
    "FAILED": AnsiColors.RED,
}


def colorize(text: str, color: AnsiColors) -> str:
    return f"{color.value}{text}{RESET}"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color.

    Args:
        text: The text to print
        color: The color to use (AnsiColors enum)
        args: Additional positional arguments for print
        kwargs: Additional keyword arguments for print
    """
    print(colorize(text, color), *args, **kwargs)


def format_transitions(transitions: Iterable[str]) -> str:
    """Render a request's state path, e.g. ``START -> INTENT_ANALYZED -> DONE``."""
    return " -> ".join(transitions) or "(no transitions)"


def print_agent_reply(reply: str, status: str | None, transitions: Iterable[str] = ()) -> None:
    """Print the state path in grey, then the reply in the color of its final status."""
    colored_print(f"[{format_transitions(transitions)}]", AnsiColors.GREY)
    colored_print(reply, STATUS_COLORS.get(status or "", AnsiColors.YELLOW))
