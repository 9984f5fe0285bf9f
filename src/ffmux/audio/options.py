"""Transcode options, validation and FFmpeg argument construction."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from ffmux.errors import OptionsError

FRAME_DURATIONS = (20, 40, 60)
# Samples per channel in one 20 ms frame at 48 kHz.
BASE_FRAME_SAMPLES = 960

_SAMPLE_WIDTHS = {
    "u8": 1,
    "s8": 1,
    "s16le": 2,
    "s16be": 2,
    "u16le": 2,
    "u16be": 2,
    "s24le": 3,
    "s24be": 3,
    "s32le": 4,
    "s32be": 4,
    "f32le": 4,
    "f32be": 4,
    "f64le": 8,
    "f64be": 8,
}


class AudioApplication(Enum):
    VOIP = "voip"  # favor speech intelligibility
    AUDIO = "audio"  # favor faithfulness to the input
    LOW_DELAY = "lowdelay"  # lowest delay modes only


@dataclass(frozen=True)
class RawInputFormat:
    """Describes headerless PCM fed to FFmpeg's stdin."""

    format: str = "s16le"
    sample_rate: int = 48000
    channels: int = 2

    def to_args(self) -> list[str]:
        return ["-f", self.format, "-ar", str(self.sample_rate), "-ac", str(self.channels)]


@dataclass(frozen=True)
class TranscodeOptions:
    codec: str = "pcm_s16le"
    format: str = "s16le"
    volume: int = 256  # 256 = 100%, 512 = 200%
    channels: int = 2
    sample_rate: int = 48000
    frame_duration: int = 20  # ms
    bitrate: int = 128  # kbit/s
    packet_loss: int = 0  # percent
    application: Optional[AudioApplication] = None
    compression_level: int = 0
    buffered_frames: int = 100
    vbr: bool = True
    threads: int = 0  # 0 = automatic
    audio_filter: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.application, str):
            try:
                object.__setattr__(self, "application", AudioApplication(self.application))
            except ValueError as exc:
                raise OptionsError("application", f"invalid audio application {self.application!r}") from exc

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "TranscodeOptions":
        known = {field.name for field in dataclasses.fields(cls)}
        kwargs = {key: value for key, value in values.items() if key in known}
        if kwargs.get("application") in ("", "none"):
            kwargs["application"] = None
        return cls(**kwargs)

    def to_mapping(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        data["application"] = self.application.value if self.application else None
        return data

    def replace(self, **changes: Any) -> "TranscodeOptions":
        return dataclasses.replace(self, **changes)

    def validate(self) -> None:
        if not self.codec:
            raise OptionsError("codec", "codec must not be empty")
        if not self.format:
            raise OptionsError("format", "format must not be empty")
        if not 0 <= self.volume <= 512:
            raise OptionsError("volume", "volume out of bounds (0-512)")
        if self.channels < 1:
            raise OptionsError("channels", "channel count must be at least 1")
        if self.sample_rate < 1:
            raise OptionsError("sample_rate", "sample rate must be positive")
        if self.frame_duration not in FRAME_DURATIONS:
            raise OptionsError("frame_duration", "invalid frame duration (20, 40, 60)")
        if self.bitrate < 1:
            raise OptionsError("bitrate", "bitrate must be positive")
        if not 0 <= self.packet_loss <= 100:
            raise OptionsError("packet_loss", "invalid packet loss percentage (0-100)")
        if self.application is not None and not isinstance(self.application, AudioApplication):
            raise OptionsError("application", "invalid audio application")
        if not 0 <= self.compression_level <= 10:
            raise OptionsError("compression_level", "compression level out of bounds (0-10)")
        if self.buffered_frames < 1:
            raise OptionsError("buffered_frames", "frame buffer must hold at least one frame")
        if self.threads < 0:
            raise OptionsError("threads", "thread count cannot be less than 0")

    @property
    def pcm_frame_len(self) -> int:
        """Samples (all channels) in one frame."""
        return BASE_FRAME_SAMPLES * self.channels * (self.frame_duration // 20)

    @property
    def sample_width(self) -> int:
        return _SAMPLE_WIDTHS.get(self.format, 2)

    @property
    def frame_bytes(self) -> int:
        return self.pcm_frame_len * self.sample_width

    def raw_input_format(self) -> RawInputFormat:
        return RawInputFormat(format=self.format, sample_rate=self.sample_rate, channels=self.channels)

    def build_args(self, input_path: str = "pipe:0", *, input_format: Optional[RawInputFormat] = None) -> list[str]:
        args = ["-stats"]
        if input_format is not None:
            args += input_format.to_args()
        args += [
            "-i", input_path,
            "-map", "0:a",
            "-acodec", self.codec,
            "-f", self.format,
            "-vbr", "on" if self.vbr else "off",
            "-vol", str(self.volume),
            "-ar", str(self.sample_rate),
            "-ac", str(self.channels),
            "-b:a", str(self.bitrate * 1000),
            "-frame_duration", str(self.frame_duration),
            "-threads", str(self.threads),
        ]
        if self.compression_level > 0:
            args += ["-compression_level", str(self.compression_level)]
        if self.application is not None:
            args += ["-application", self.application.value]
        if self.packet_loss > 0:
            args += ["-packet_loss", str(self.packet_loss)]
        if self.audio_filter:
            args += ["-af", self.audio_filter]
        args.append("pipe:1")
        return args


STD_TRANSCODE_OPTIONS = TranscodeOptions(
    application=AudioApplication.AUDIO,
    compression_level=10,
    packet_loss=1,
)

RAW_TRANSCODE_OPTIONS = TranscodeOptions()
