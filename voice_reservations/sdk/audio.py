"""
Audio sources and file helpers.

Live sessions stream 16 kHz mono 16-bit PCM. File-backed sources read raw
PCM or WAV recordings and hand them out in fixed-size frames.
"""

import asyncio
import wave
from pathlib import Path
from typing import AsyncIterator, Optional

LIVE_SAMPLE_RATE = 16000
_SAMPLE_WIDTH = 2  # 16-bit

AUDIO_MIME_TYPES = {
    ".webm": "audio/webm",
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".ogg": "audio/ogg",
    ".m4a": "audio/mp4",
    ".flac": "audio/flac",
}


def guess_audio_mime(path: str) -> str:
    """MIME type of a recording from its suffix, audio/webm if unknown."""
    return AUDIO_MIME_TYPES.get(Path(path).suffix.lower(), "audio/webm")


def extension_for(mime_type: str) -> str:
    for suffix, known in AUDIO_MIME_TYPES.items():
        if known == mime_type:
            return suffix
    return ".webm"


def wav_duration_ms(path: str) -> Optional[int]:
    """Length of a WAV recording in milliseconds, None for other formats."""
    if Path(path).suffix.lower() != ".wav":
        return None
    try:
        with wave.open(str(path), "rb") as wav:
            rate = wav.getframerate()
            frames = wav.getnframes()
    except wave.Error:
        return None
    if not rate:
        return None
    return int(round(frames * 1000 / rate))


def _read_pcm(path: Path) -> bytes:
    if path.suffix.lower() != ".wav":
        return path.read_bytes()
    try:
        wav = wave.open(str(path), "rb")
    except wave.Error as e:
        raise ValueError(f"{path} is not a valid WAV file: {e}") from e
    with wav:
        if (
            wav.getframerate() != LIVE_SAMPLE_RATE
            or wav.getnchannels() != 1
            or wav.getsampwidth() != _SAMPLE_WIDTH
        ):
            raise ValueError(
                f"{path} must be {LIVE_SAMPLE_RATE} Hz mono 16-bit PCM"
            )
        return wav.readframes(wav.getnframes())


class PcmFileSource:
    """Plays a recording into a live session as if it were a microphone."""

    def __init__(self, path: str, frame_bytes: int = 4096, pace: bool = True):
        """Initialize the source.

        Args:
            path: Raw PCM or WAV file (16 kHz mono 16-bit)
            frame_bytes: Size of each frame handed out
            pace: Sleep for each frame's duration to mimic live capture
        """
        if frame_bytes <= 0 or frame_bytes % _SAMPLE_WIDTH:
            raise ValueError("frame_bytes must be a positive multiple of 2")
        self.path = Path(path)
        self.frame_bytes = frame_bytes
        self.pace = pace
        self.closed = False
        self._pcm = _read_pcm(self.path)

    async def frames(self) -> AsyncIterator[bytes]:
        pcm = self._pcm
        frame_seconds = self.frame_bytes / (LIVE_SAMPLE_RATE * _SAMPLE_WIDTH)
        for offset in range(0, len(pcm), self.frame_bytes):
            if self.closed:
                return
            yield pcm[offset:offset + self.frame_bytes]
            if self.pace:
                await asyncio.sleep(frame_seconds)

    async def close(self) -> None:
        self.closed = True
