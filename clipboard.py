import shutil
import subprocess
import sys


class ClipboardError(Exception):
    pass


def _clipboard_command():
    """Pick the platform's clipboard writer."""
    if sys.platform == "darwin":
        return ["pbcopy"]
    if sys.platform.startswith("win"):
        return ["clip"]
    for candidate in (["wl-copy"], ["xclip", "-selection", "clipboard"], ["xsel", "--clipboard", "--input"]):
        if shutil.which(candidate[0]):
            return candidate
    return None


def copy_to_clipboard(text: str) -> None:
    """Copy ``text`` to the system clipboard or raise ClipboardError."""
    command = _clipboard_command()
    if command is None:
        raise ClipboardError("No clipboard command available (install wl-copy, xclip or xsel)")

    try:
        result = subprocess.run(
            command,
            input=text,
            capture_output=True,
            text=True,
            timeout=10,
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise ClipboardError(f"Clipboard command failed: {e}") from e

    if result.returncode != 0:
        raise ClipboardError(
            f"Clipboard command exited with {result.returncode}: {result.stderr.strip()}"
        )
