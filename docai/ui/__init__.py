"""Terminal presentation for the docai CLI."""

from .console import ConsoleManager

__all__ = ["ConsoleManager"]
