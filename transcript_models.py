"""Data models for caption tracks and transcript lines."""

from dataclasses import dataclass
from typing import Dict, Union


@dataclass(frozen=True)
class TranscriptLine:
    """One caption cue. Offsets and durations are in seconds."""
    text: str
    offset: float
    duration: float

    def to_dict(self) -> Dict[str, Union[str, float]]:
        return {"text": self.text, "offset": self.offset, "duration": self.duration}


@dataclass(frozen=True)
class CaptionTrack:
    """One language-specific caption stream of a video."""
    language_code: str
    base_url: str  # absolute timed-text URL
    kind: str = ""  # "asr" for auto-generated tracks
    name: str = ""

    @property
    def is_asr(self) -> bool:
        return self.kind.lower() == "asr"
