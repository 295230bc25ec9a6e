"""Apple Music source for macOS, queried with osascript."""

import asyncio
import sys

from ..snapshot import Snapshot
from .base import SourceAdapter


APPLESCRIPT = r'''
tell application "Music"
    if it is not running then
        return "OK=0"
    end if

    set ps to (player state as string)
    if ps is "stopped" then
        return "OK=0"
    end if

    set tName to (name of current track as string)
    set tArtist to (artist of current track as string)
    set tAlbum to (album of current track as string)
    set tDur to (duration of current track)
    set tPos to (player position)
    set isPlaying to (ps is "playing")

    return "OK=1|" & tName & "|" & tArtist & "|" & tAlbum & "|" & (tDur as string) & "|" & (tPos as string) & "|" & (isPlaying as string)
end tell
'''


def _seconds_to_ms(value: str) -> int:
    try:
        # Some locales print a decimal comma
        return max(0, int(float(value.replace(",", ".")) * 1000))
    except ValueError:
        return 0


def parse_osascript_output(out: str) -> Snapshot:
    """Parse the pipe-delimited reply of the AppleScript above."""
    out = (out or "").strip()
    if not out.startswith("OK=1|"):
        return Snapshot(source=MacMusicSource.name)

    parts = out.split("|")
    if len(parts) < 7:
        raise ValueError(f"Malformed osascript output: {out[:80]}")

    return Snapshot.from_dict(
        {
            "title": parts[1],
            "artist": parts[2],
            "album": parts[3],
            "duration": _seconds_to_ms(parts[4]),
            "progress": _seconds_to_ms(parts[5]),
            "playing": parts[6].lower() == "true",
        },
        source=MacMusicSource.name,
    )


class MacMusicSource(SourceAdapter):
    """Reads the Music app's player state."""

    name = "macos"

    def __init__(self, timeout: float = 5.0, platform: str = sys.platform):
        self.timeout = timeout
        self.platform = platform

    async def fetch(self) -> Snapshot:
        if self.platform != "darwin":
            return Snapshot.error_snapshot(
                self.name, "Apple Music is only available on macOS"
            )

        process = await asyncio.create_subprocess_exec(
            "osascript", "-e", APPLESCRIPT,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            return Snapshot.error_snapshot(self.name, "osascript timed out")
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()

        if process.returncode != 0:
            return Snapshot.error_snapshot(
                self.name, f"osascript exited with code {process.returncode}"
            )
        return parse_osascript_output(stdout.decode("utf-8", errors="replace"))
