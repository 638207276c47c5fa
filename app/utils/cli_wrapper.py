"""Media tool wrapper for async subprocess execution.

This module provides an async wrapper around ffmpeg/ffprobe invocations,
preventing blocking of the async event loop while frames are sampled from
an uploaded video.

Critical Pattern:
- Callers MUST use this wrapper instead of subprocess.run() directly
- Ensures non-blocking execution via asyncio.to_thread()
- Only whitelisted binaries may be executed
- Provides structured error handling with MediaToolError
"""

import asyncio
import shutil
import subprocess

from app.utils.logging import get_logger

log = get_logger(__name__)

ALLOWED_TOOLS = frozenset({"ffmpeg", "ffprobe"})


class MediaToolError(Exception):
    """Raised when a media tool fails with a non-zero exit code.

    Attributes:
        tool (str): Binary name (e.g., "ffprobe")
        exit_code (int): Process exit code
        stderr (str): Captured stderr output
    """

    def __init__(self, tool: str, exit_code: int, stderr: str) -> None:
        self.tool: str = tool
        self.exit_code: int = exit_code
        self.stderr: str = stderr
        super().__init__(f"{tool} failed with exit code {exit_code}: {stderr}")


async def run_media_tool(
    tool: str,
    args: list[str],
    timeout: int = 60,
    text: bool = True,
) -> subprocess.CompletedProcess:
    """Run ffmpeg or ffprobe without blocking the event loop.

    Args:
        tool: Binary name, one of ALLOWED_TOOLS.
        args: Command-line arguments.
        timeout: Timeout in seconds (default: 60).
        text: Decode stdout/stderr as text. Pass False to capture raw image bytes.

    Returns:
        CompletedProcess with stdout, stderr, returncode.

    Raises:
        ValueError: If tool is not whitelisted.
        FileNotFoundError: If the binary is not on PATH.
        MediaToolError: If the tool exits with a non-zero code.
        asyncio.TimeoutError: If the tool exceeds the timeout.

    Example:
        >>> result = await run_media_tool(
        ...     "ffprobe",
        ...     ["-v", "error", "-show_entries", "format=duration", "clip.mp4"],
        ...     timeout=10,
        ... )
    """
    if tool not in ALLOWED_TOOLS:
        raise ValueError(f"Tool must be one of {sorted(ALLOWED_TOOLS)}, got: {tool}")

    binary = shutil.which(tool)
    if binary is None:
        raise FileNotFoundError(f"{tool} not found on PATH")

    # Truncate long arguments (file paths) to prevent log bloat
    logged_args = [arg[:100] + "..." if len(arg) > 100 else arg for arg in args]
    log.debug("media_tool_start", tool=tool, args=logged_args, timeout=timeout)

    try:
        result = await asyncio.to_thread(
            subprocess.run,
            [binary, *args],
            capture_output=True,
            text=text,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        log.error("media_tool_timeout", tool=tool, timeout=timeout)
        raise asyncio.TimeoutError(f"{tool} exceeded timeout of {timeout}s") from e

    if result.returncode != 0:
        stderr = result.stderr if text else result.stderr.decode(errors="replace")
        stderr_truncated = stderr[:500] + "..." if len(stderr) > 500 else stderr
        log.error(
            "media_tool_error",
            tool=tool,
            exit_code=result.returncode,
            stderr=stderr_truncated,
        )
        raise MediaToolError(tool, result.returncode, stderr)

    return result
