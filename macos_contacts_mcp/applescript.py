"""
AppleScript execution for Contacts.app automation.

Scripts are passed to osascript as a discrete argument, never through a
shell, and every piece of caller-supplied text is escaped before it is
interpolated into a script string literal.
"""

import logging
import subprocess

from macos_contacts_mcp.errors import AppleScriptError

logger = logging.getLogger(__name__)

# Contacts.app can be slow to launch on first use
APPLESCRIPT_TIMEOUT = 15


def escape_applescript_string(s: str) -> str:
    r"""
    Escape a string for safe use inside an AppleScript double-quoted literal.

    Order matters: backslashes are doubled first, then double quotes are
    escaped. Carriage returns and newlines are stripped, since a raw line
    break would terminate the literal.

    Args:
        s: The string to escape

    Returns:
        Escaped string safe for AppleScript double-quoted strings

    Examples:
        >>> escape_applescript_string('Hello "World"')
        'Hello \\"World\\"'
        >>> escape_applescript_string('Path\\to\\file')
        'Path\\\\to\\\\file'
    """
    if s is None:
        return ""
    return (
        s.replace('\\', '\\\\')
        .replace('"', '\\"')
        .replace('\r', '')
        .replace('\n', '')
    )


def _failure_detail(error: Exception) -> str:
    """Pick the most useful description of a failed osascript run."""
    stderr = getattr(error, "stderr", None)
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    if stderr and stderr.strip():
        return stderr.strip()
    return str(error) or repr(error)


def run_applescript(script: str) -> str:
    """
    Run an AppleScript via osascript.

    Args:
        script: Complete AppleScript source

    Returns:
        The script's stdout with surrounding whitespace trimmed

    Raises:
        AppleScriptError: On non-zero exit, timeout, or if osascript
            cannot be started
    """
    try:
        result = subprocess.run(
            ['osascript', '-e', script],
            capture_output=True,
            text=True,
            timeout=APPLESCRIPT_TIMEOUT
        )
    except subprocess.TimeoutExpired as e:
        logger.error(f"osascript timed out after {APPLESCRIPT_TIMEOUT}s")
        raise AppleScriptError(_failure_detail(e)) from e
    except OSError as e:
        logger.error(f"Failed to start osascript: {e}")
        raise AppleScriptError(_failure_detail(e)) from e

    if result.returncode != 0:
        detail = result.stderr.strip() if result.stderr else ""
        if not detail:
            detail = f"osascript exited with status {result.returncode}"
        logger.error(f"AppleScript failed: {detail}")
        raise AppleScriptError(detail)

    return result.stdout.strip()
