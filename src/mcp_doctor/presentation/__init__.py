"""Presentation layer for MCP Doctor.

Console rendering of status snapshots, diagnoses, repair reports and
backups.  ``rich`` is used when importable; output degrades to plain text
otherwise.
"""

from mcp_doctor.presentation.console import ConsoleRenderer

__all__ = ["ConsoleRenderer"]
