"""Typed transformation options and their validation."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields, replace
from typing import TYPE_CHECKING, Any, ClassVar

from ..config.constants import (
    MAX_LIGHTNESS,
    MAX_PITCH,
    MAX_SATURATION,
    MIN_LIGHTNESS,
    MIN_PITCH,
    MIN_SATURATION,
    MIN_SPLIT_COUNT,
    RANDOM_AUDIO_BITRATE_KBPS,
    RANDOM_FRAME_RATES,
    RANDOM_MAX_PADDING,
    RANDOM_MAX_SPLIT_COUNT,
    RANDOM_MAX_TRIM_SECONDS,
    RANDOM_RESOLUTIONS,
    RANDOM_STICKER_SIZE,
    RANDOM_VALUE_DECIMALS,
    RANDOM_VIDEO_BITRATE_KBPS,
)
from .base import OptionError

if TYPE_CHECKING:
    import random

LOG = logging.getLogger(__name__)


def _coerce_number(value: object, *, option: str, field_name: str, integer: bool) -> float | int:
    """Convert a user-supplied value to a finite number."""
    if isinstance(value, bool) or value is None:
        msg = f"{option}.{field_name} must be a number, got {value!r}"
        raise OptionError(msg, option=option, field_name=field_name)
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as e:
        msg = f"{option}.{field_name} must be a number, got {value!r}"
        raise OptionError(msg, option=option, field_name=field_name) from e
    if not math.isfinite(number):
        msg = f"{option}.{field_name} must be finite, got {value!r}"
        raise OptionError(msg, option=option, field_name=field_name)
    if integer:
        if not number.is_integer():
            msg = f"{option}.{field_name} must be an integer, got {value!r}"
            raise OptionError(msg, option=option, field_name=field_name)
        return int(number)
    return number


def _coerce_enabled(value: object, *, option: str) -> bool:
    if not isinstance(value, bool):
        msg = f"{option}.enabled must be a boolean, got {value!r}"
        raise OptionError(msg, option=option, field_name="enabled")
    return value


@dataclass(frozen=True)
class ToggleOption:
    """Option without parameters; its effect rides on other steps."""

    enabled: bool = False

    key: ClassVar[str] = "toggle"

    @classmethod
    def from_dict(cls, data: object) -> ToggleOption:
        """Build the option from its mapping form, rejecting unknown fields."""
        if not isinstance(data, dict):
            msg = f"{cls.key} must be a mapping, got {type(data).__name__}"
            raise OptionError(msg, option=cls.key)
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            msg = f"Unknown parameter(s) for {cls.key}: {', '.join(map(str, unknown))}"
            raise OptionError(msg, option=cls.key, field_name=str(unknown[0]))
        kwargs = dict(data)
        if "enabled" in kwargs:
            kwargs["enabled"] = _coerce_enabled(kwargs["enabled"], option=cls.key)
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def randomized(self, rng: random.Random) -> ToggleOption:
        """Copy with parameters drawn from ``rng``; parameterless options are returned as is."""
        return self


@dataclass(frozen=True)
class ChangeVideoICC(ToggleOption):
    key: ClassVar[str] = "changeVideoICC"


@dataclass(frozen=True)
class ChangeExifData(ToggleOption):
    key: ClassVar[str] = "changeExifData"


@dataclass(frozen=True)
class ChangeMD5Hash(ToggleOption):
    key: ClassVar[str] = "changeMD5Hash"


@dataclass(frozen=True)
class ChangeMetadata(ToggleOption):
    """Container tag rewrite; blank fields clear the existing tag."""

    title: str = ""
    artist: str = ""
    album: str = ""
    year: str = ""

    key: ClassVar[str] = "changeMetadata"
    tag_names: ClassVar[tuple[str, ...]] = ("title", "artist", "album", "year")

    def __post_init__(self) -> None:
        for name in self.tag_names:
            value = getattr(self, name)
            if value is None:
                object.__setattr__(self, name, "")
            elif isinstance(value, (int, float)) and not isinstance(value, bool):
                object.__setattr__(self, name, str(value))
            elif not isinstance(value, str):
                msg = f"{self.key}.{name} must be a string, got {value!r}"
                raise OptionError(msg, option=self.key, field_name=name)

    @property
    def tags(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in self.tag_names}


@dataclass(frozen=True)
class ValueOption(ToggleOption):
    """Option with a single numeric ``value`` bounded per subclass."""

    value: float = 0.0

    minimum: ClassVar[float | None] = None
    maximum: ClassVar[float | None] = None
    exclusive_minimum: ClassVar[bool] = False
    integer: ClassVar[bool] = False
    random_range: ClassVar[tuple[float, float] | None] = None
    random_decimals: ClassVar[int] = RANDOM_VALUE_DECIMALS

    def __post_init__(self) -> None:
        number = _coerce_number(self.value, option=self.key, field_name="value", integer=self.integer)
        object.__setattr__(self, "value", number)

        if self.minimum is not None:
            too_small = number <= self.minimum if self.exclusive_minimum else number < self.minimum
            if too_small:
                op = ">" if self.exclusive_minimum else ">="
                msg = f"{self.key}.value must be {op} {self.minimum:g}, got {number:g}"
                raise OptionError(msg, option=self.key, field_name="value")
        if self.maximum is not None and number > self.maximum:
            msg = f"{self.key}.value must be <= {self.maximum:g}, got {number:g}"
            raise OptionError(msg, option=self.key, field_name="value")

    def randomized(self, rng: random.Random) -> ValueOption:
        if self.random_range is None:
            return self
        low, high = self.random_range
        if self.integer:
            return replace(self, value=rng.randint(int(low), int(high)))
        return replace(self, value=round(rng.uniform(low, high), self.random_decimals))


@dataclass(frozen=True)
class ChangeSaturation(ValueOption):
    value: float = 1.0

    key: ClassVar[str] = "changeSaturation"
    minimum: ClassVar[float | None] = MIN_SATURATION
    maximum: ClassVar[float | None] = MAX_SATURATION
    random_range: ClassVar[tuple[float, float] | None] = (MIN_SATURATION, MAX_SATURATION)


@dataclass(frozen=True)
class VoiceChanger(ValueOption):
    """Pitch factor, 1.0 leaves the voice untouched."""

    value: float = 1.0

    key: ClassVar[str] = "voiceChanger"
    minimum: ClassVar[float | None] = MIN_PITCH
    maximum: ClassVar[float | None] = MAX_PITCH
    random_range: ClassVar[tuple[float, float] | None] = (MIN_PITCH, MAX_PITCH)


@dataclass(frozen=True)
class ChangeHSLLightness(ValueOption):
    value: float = 0.0

    key: ClassVar[str] = "changeHSLLightness"
    minimum: ClassVar[float | None] = MIN_LIGHTNESS
    maximum: ClassVar[float | None] = MAX_LIGHTNESS
    random_range: ClassVar[tuple[float, float] | None] = (MIN_LIGHTNESS, MAX_LIGHTNESS)


@dataclass(frozen=True)
class ChangeFrameRate(ValueOption):
    value: float = 30.0

    key: ClassVar[str] = "changeFrameRate"
    minimum: ClassVar[float | None] = 0.0
    exclusive_minimum: ClassVar[bool] = True

    def randomized(self, rng: random.Random) -> ChangeFrameRate:
        return replace(self, value=rng.choice(RANDOM_FRAME_RATES))


@dataclass(frozen=True)
class AddSticker(ValueOption):
    """Square sticker; ``value`` is the edge length in pixels."""

    value: float = 100

    key: ClassVar[str] = "addSticker"
    minimum: ClassVar[float | None] = 0.0
    exclusive_minimum: ClassVar[bool] = True
    integer: ClassVar[bool] = True
    random_range: ClassVar[tuple[float, float] | None] = RANDOM_STICKER_SIZE

    @property
    def size(self) -> int:
        return int(self.value)


@dataclass(frozen=True)
class ChangeAudioBitrate(ValueOption):
    value: float = 128

    key: ClassVar[str] = "changeAudioBitrate"
    minimum: ClassVar[float | None] = 0.0
    exclusive_minimum: ClassVar[bool] = True
    random_range: ClassVar[tuple[float, float] | None] = RANDOM_AUDIO_BITRATE_KBPS
    random_decimals: ClassVar[int] = 0


@dataclass(frozen=True)
class ChangeVideoBitrate(ValueOption):
    value: float = 1000

    key: ClassVar[str] = "changeVideoBitrate"
    minimum: ClassVar[float | None] = 0.0
    exclusive_minimum: ClassVar[bool] = True
    random_range: ClassVar[tuple[float, float] | None] = RANDOM_VIDEO_BITRATE_KBPS
    random_decimals: ClassVar[int] = 0


@dataclass(frozen=True)
class TrimVideoStart(ValueOption):
    """Seconds removed from the start."""

    value: float = 0.0

    key: ClassVar[str] = "trimVideoStart"
    minimum: ClassVar[float | None] = 0.0
    random_range: ClassVar[tuple[float, float] | None] = (0.0, RANDOM_MAX_TRIM_SECONDS)


@dataclass(frozen=True)
class TrimVideoEnd(ValueOption):
    """Seconds removed from the end."""

    value: float = 0.0

    key: ClassVar[str] = "trimVideoEnd"
    minimum: ClassVar[float | None] = 0.0
    random_range: ClassVar[tuple[float, float] | None] = (0.0, RANDOM_MAX_TRIM_SECONDS)


@dataclass(frozen=True)
class ChangeResolution(ToggleOption):
    width: int = 1280
    height: int = 720

    key: ClassVar[str] = "changeResolution"

    def __post_init__(self) -> None:
        for name in ("width", "height"):
            number = _coerce_number(getattr(self, name), option=self.key, field_name=name, integer=True)
            if number <= 0:
                msg = f"{self.key}.{name} must be a positive integer, got {number}"
                raise OptionError(msg, option=self.key, field_name=name)
            object.__setattr__(self, name, number)

    def randomized(self, rng: random.Random) -> ChangeResolution:
        width, height = rng.choice(RANDOM_RESOLUTIONS)
        return replace(self, width=width, height=height)


@dataclass(frozen=True)
class RemovePadding(ToggleOption):
    """Pixels cropped from each edge."""

    left: int = 0
    right: int = 0
    top: int = 0
    bottom: int = 0

    key: ClassVar[str] = "removePadding"

    def __post_init__(self) -> None:
        for name in ("left", "right", "top", "bottom"):
            number = _coerce_number(getattr(self, name), option=self.key, field_name=name, integer=True)
            if number < 0:
                msg = f"{self.key}.{name} must be a non-negative integer, got {number}"
                raise OptionError(msg, option=self.key, field_name=name)
            object.__setattr__(self, name, number)

    def randomized(self, rng: random.Random) -> RemovePadding:
        edges = {name: rng.randint(0, RANDOM_MAX_PADDING) for name in ("left", "right", "top", "bottom")}
        return replace(self, **edges)

    @property
    def horizontal(self) -> int:
        return self.left + self.right

    @property
    def vertical(self) -> int:
        return self.top + self.bottom


@dataclass(frozen=True)
class RandomSplits(ToggleOption):
    count: int = MIN_SPLIT_COUNT

    key: ClassVar[str] = "randomSplits"

    def __post_init__(self) -> None:
        number = _coerce_number(self.count, option=self.key, field_name="count", integer=True)
        if number < MIN_SPLIT_COUNT:
            msg = f"{self.key}.count must be >= {MIN_SPLIT_COUNT}, got {number}"
            raise OptionError(msg, option=self.key, field_name="count")
        object.__setattr__(self, "count", number)

    def randomized(self, rng: random.Random) -> RandomSplits:
        return replace(self, count=rng.randint(MIN_SPLIT_COUNT, RANDOM_MAX_SPLIT_COUNT))


# Option key -> (attribute name, option class). Closed and exhaustive.
OPTION_TYPES: dict[str, tuple[str, type[ToggleOption]]] = {
    "changeMetadata": ("change_metadata", ChangeMetadata),
    "changeVideoICC": ("change_video_icc", ChangeVideoICC),
    "changeExifData": ("change_exif_data", ChangeExifData),
    "changeMD5Hash": ("change_md5_hash", ChangeMD5Hash),
    "changeSaturation": ("change_saturation", ChangeSaturation),
    "randomSplits": ("random_splits", RandomSplits),
    "trimVideoStart": ("trim_video_start", TrimVideoStart),
    "trimVideoEnd": ("trim_video_end", TrimVideoEnd),
    "voiceChanger": ("voice_changer", VoiceChanger),
    "changeHSLLightness": ("change_hsl_lightness", ChangeHSLLightness),
    "changeFrameRate": ("change_frame_rate", ChangeFrameRate),
    "addSticker": ("add_sticker", AddSticker),
    "changeAudioBitrate": ("change_audio_bitrate", ChangeAudioBitrate),
    "changeVideoBitrate": ("change_video_bitrate", ChangeVideoBitrate),
    "changeResolution": ("change_resolution", ChangeResolution),
    "removePadding": ("remove_padding", RemovePadding),
}

OPTION_KEYS: tuple[str, ...] = tuple(OPTION_TYPES)

DURATION_DEPENDENT_OPTIONS: tuple[str, ...] = ("trimVideoStart", "trimVideoEnd", "randomSplits")


@dataclass(frozen=True)
class TransformOptions:
    """The full, closed set of transformation options."""

    change_metadata: ChangeMetadata = field(default_factory=ChangeMetadata)
    change_video_icc: ChangeVideoICC = field(default_factory=ChangeVideoICC)
    change_exif_data: ChangeExifData = field(default_factory=ChangeExifData)
    change_md5_hash: ChangeMD5Hash = field(default_factory=ChangeMD5Hash)
    change_saturation: ChangeSaturation = field(default_factory=ChangeSaturation)
    random_splits: RandomSplits = field(default_factory=RandomSplits)
    trim_video_start: TrimVideoStart = field(default_factory=TrimVideoStart)
    trim_video_end: TrimVideoEnd = field(default_factory=TrimVideoEnd)
    voice_changer: VoiceChanger = field(default_factory=VoiceChanger)
    change_hsl_lightness: ChangeHSLLightness = field(default_factory=ChangeHSLLightness)
    change_frame_rate: ChangeFrameRate = field(default_factory=ChangeFrameRate)
    add_sticker: AddSticker = field(default_factory=AddSticker)
    change_audio_bitrate: ChangeAudioBitrate = field(default_factory=ChangeAudioBitrate)
    change_video_bitrate: ChangeVideoBitrate = field(default_factory=ChangeVideoBitrate)
    change_resolution: ChangeResolution = field(default_factory=ChangeResolution)
    remove_padding: RemovePadding = field(default_factory=RemovePadding)

    def __post_init__(self) -> None:
        for key, (attr, option_cls) in OPTION_TYPES.items():
            if not isinstance(getattr(self, attr), option_cls):
                msg = f"{key} must be a {option_cls.__name__}"
                raise OptionError(msg, option=key)

    @classmethod
    def from_dict(cls, data: object) -> TransformOptions:
        """
        Build options from the camelCase mapping produced by the UI or an options file.

        Missing keys keep their (disabled) defaults; unknown keys are rejected.
        """
        if data is None:
            return cls()
        if not isinstance(data, dict):
            msg = f"Options must be a mapping, got {type(data).__name__}"
            raise OptionError(msg)

        unknown = sorted(str(key) for key in data if key not in OPTION_TYPES)
        if unknown:
            msg = f"Unknown option(s): {', '.join(unknown)}"
            raise OptionError(msg, option=unknown[0])

        kwargs = {}
        for key, value in data.items():
            attr, option_cls = OPTION_TYPES[key]
            kwargs[attr] = option_cls.from_dict(value)
        return cls(**kwargs)

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {key: getattr(self, attr).to_dict() for key, (attr, _) in OPTION_TYPES.items()}

    def randomized(self, rng: random.Random) -> TransformOptions:
        """
        Copy with every parameter drawn at random within its allowed range.

        Enabled flags and metadata text are kept, so only the options the
        caller switched on take effect.
        """
        drawn = {attr: getattr(self, attr).randomized(rng) for attr, _ in OPTION_TYPES.values()}
        LOG.debug("Drew random option values: %s", drawn)
        return replace(self, **drawn)

    def get(self, key: str) -> ToggleOption:
        """Look up an option by its camelCase key."""
        if key not in OPTION_TYPES:
            msg = f"Unknown option: {key}"
            raise OptionError(msg, option=key)
        return getattr(self, OPTION_TYPES[key][0])

    @property
    def enabled_keys(self) -> tuple[str, ...]:
        return tuple(key for key in OPTION_KEYS if self.get(key).enabled)

    @property
    def requires_duration(self) -> bool:
        """Whether compiling these options needs the source duration."""
        return any(self.get(key).enabled for key in DURATION_DEPENDENT_OPTIONS)
