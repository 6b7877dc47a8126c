"""
Filesystem listing tool.
"""

import asyncio
import os
from datetime import datetime
from pathlib import Path

from klu.config import MAX_LISTING_ENTRIES
from klu.engine.cancellation import CancellationToken
from klu.errors import AccessDenied, InvalidParameters
from klu.settings import RuntimeSettings
from klu.tools.base import ListFilesRequest, Tool, ToolCategory, ToolName, ToolParameter
from klu.utils.logging import logger

EMPTY_NOTICE = "No files found (directory may be empty or access restricted)"


def format_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


def describe_entry(entry: os.DirEntry) -> str:
    """One listing line: name (File|Directory, size, created)."""
    try:
        stat = entry.stat()
        kind = "Directory" if entry.is_dir() else "File"
    except OSError:
        return f"{entry.name} (Error: Unable to access file attributes)"

    # st_birthtime exists on macOS and BSD; fall back to ctime elsewhere
    created = datetime.fromtimestamp(getattr(stat, "st_birthtime", stat.st_ctime))
    return f"{entry.name} ({kind}, {format_size(stat.st_size)}, {created:%m/%d/%y, %H:%M})"


def list_directory(directory: Path, limit: int = MAX_LISTING_ENTRIES) -> str:
    """
    Render a directory listing, hidden entries skipped, sorted by name.

    Raises:
        AccessDenied: If the directory cannot be enumerated
    """
    try:
        with os.scandir(directory) as it:
            entries = sorted(
                (e for e in it if not e.name.startswith(".")),
                key=lambda e: e.name,
            )
    except PermissionError as e:
        raise AccessDenied(str(directory)) from e

    lines = [f"Contents of {directory}:"]
    if not entries:
        lines.append(EMPTY_NOTICE)

    lines.extend(describe_entry(entry) for entry in entries[:limit])

    if len(entries) > limit:
        lines.append(f"... and {len(entries) - limit} more files (listing truncated)")

    logger.info(f"Listed directory: {directory} ({len(entries)} entries)")
    return "\n".join(lines)


class ListFilesTool(Tool):
    """List the entries of a directory."""

    def __init__(self, settings: RuntimeSettings):
        super().__init__(
            name=ToolName.LIST_FILES,
            description="List files and folders in a directory with their size and creation date",
            category=ToolCategory.FILESYSTEM,
            parameters=[
                ToolParameter(
                    name="directory",
                    type="string",
                    description="Absolute path of the directory to list",
                    required=True,
                ),
            ],
        )
        self.settings = settings

    async def execute(self, request: ListFilesRequest, token: CancellationToken) -> str:
        directory = Path(request.directory).expanduser()

        if not directory.exists():
            raise InvalidParameters(f"Directory does not exist at path: {request.directory}")

        if not self.settings.is_tool_enabled(ToolName.LIST_FILES.value):
            raise InvalidParameters("File listing is disabled in app settings")

        if not directory.is_dir():
            raise InvalidParameters(f"Not a directory: {request.directory}")

        token.raise_if_cancelled()

        # Once started, enumeration runs to completion
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, list_directory, directory)
