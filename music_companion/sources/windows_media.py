"""Windows global media session source (any app using system media controls)."""

import asyncio
import json
import logging
import sys

from ..snapshot import Snapshot
from .base import SourceAdapter

logger = logging.getLogger("music_companion.sources.windows")


POWERSHELL_SCRIPT = r"""
Add-Type -AssemblyName System.Runtime.WindowsRuntime
$asTaskGeneric = ([System.WindowsRuntimeSystemExtensions].GetMethods() | Where-Object { $_.Name -eq 'AsTask' -and $_.GetParameters().Count -eq 1 -and $_.GetParameters()[0].ParameterType.Name -eq 'IAsyncOperation`1' })[0]
Function Await($WinRtTask, $ResultType) {
    $asTask = $asTaskGeneric.MakeGenericMethod($ResultType)
    $netTask = $asTask.Invoke($null, @($WinRtTask))
    $netTask.Wait(-1) | Out-Null
    $netTask.Result
}
[Windows.Media.Control.GlobalSystemMediaTransportControlsSessionManager, Windows.Media.Control, ContentType = WindowsRuntime] | Out-Null
[Windows.Storage.Streams.DataReader, Windows.Storage.Streams, ContentType = WindowsRuntime] | Out-Null
$sessionManager = Await ([Windows.Media.Control.GlobalSystemMediaTransportControlsSessionManager]::RequestAsync()) ([Windows.Media.Control.GlobalSystemMediaTransportControlsSessionManager])
$session = $sessionManager.GetCurrentSession()
if ($null -eq $session) {
    Write-Output '{"playing":false,"error":"No media session"}'
    exit
}
$mediaProperties = Await ($session.TryGetMediaPropertiesAsync()) ([Windows.Media.Control.GlobalSystemMediaTransportControlsSessionMediaProperties])
$playbackInfo = $session.GetPlaybackInfo()
$timelineProperties = $session.GetTimelineProperties()
$thumbnailBase64 = ""
if ($null -ne $mediaProperties.Thumbnail) {
    try {
        $stream = Await ($mediaProperties.Thumbnail.OpenReadAsync()) ([Windows.Storage.Streams.IRandomAccessStreamWithContentType])
        $reader = New-Object Windows.Storage.Streams.DataReader($stream)
        Await ($reader.LoadAsync($stream.Size)) ([uint32]) | Out-Null
        $bytes = New-Object byte[] $stream.Size
        $reader.ReadBytes($bytes)
        $thumbnailBase64 = [Convert]::ToBase64String($bytes)
        $reader.Dispose()
        $stream.Dispose()
    } catch {}
}
$result = @{
    playing = ($playbackInfo.PlaybackStatus -eq 'Playing')
    title = $mediaProperties.Title
    artist = $mediaProperties.Artist
    album = $mediaProperties.AlbumTitle
    albumArt = if ($thumbnailBase64) { "data:image/png;base64,$thumbnailBase64" } else { $null }
    duration = [int]$timelineProperties.EndTime.TotalMilliseconds
    progress = [int]$timelineProperties.Position.TotalMilliseconds
    source = "windows"
    appName = $session.SourceAppUserModelId
}
$result | ConvertTo-Json -Compress
"""


def parse_session_output(stdout: str) -> Snapshot:
    """
    Parse the JSON line written by the media session script.

    Raises:
        ValueError: If the output is empty or not a JSON object
    """
    text = (stdout or "").strip()
    if not text:
        raise ValueError("Empty media session output")
    # PowerShell may print warnings before the JSON line
    line = text.splitlines()[-1]
    data = json.loads(line)
    if not isinstance(data, dict):
        raise ValueError(f"Unexpected media session output: {line[:80]}")
    return Snapshot.from_dict(data, source=WindowsMediaSource.name)


class WindowsMediaSource(SourceAdapter):
    """Reads the current Windows media session through PowerShell."""

    name = "windows"

    def __init__(self, timeout: float = 5.0, platform: str = sys.platform):
        self.timeout = timeout
        self.platform = platform

    async def fetch(self) -> Snapshot:
        if self.platform != "win32":
            return Snapshot.error_snapshot(
                self.name, "Windows Media Session is only available on Windows"
            )

        process = await asyncio.create_subprocess_exec(
            "powershell", "-NoProfile", "-ExecutionPolicy", "Bypass",
            "-Command", POWERSHELL_SCRIPT,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            return Snapshot.error_snapshot(self.name, "Media session query timed out")
        finally:
            if process.returncode is None:
                process.kill()
                await process.wait()

        out = stdout.decode("utf-8", errors="replace")
        if stderr and not out.strip():
            logger.error(f"PowerShell stderr: {stderr.decode('utf-8', errors='replace')}")
            return Snapshot.error_snapshot(self.name, "PowerShell error")

        return parse_session_output(out)
