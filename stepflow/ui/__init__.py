"""Terminal output for the stepflow CLI."""

from .console import ConsoleManager

__all__ = ["ConsoleManager"]
