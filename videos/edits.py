"""
Declarative edit lists.

An edit list is inert data: a tuple of tagged records that can be stored on
the job row, shipped to a worker process and rendered any number of times
with the same result. Nothing here touches storage or ffmpeg.
"""

import math
import re
from dataclasses import asdict, dataclass, field

from .errors import EditSpecError

TEXT_POSITIONS = ("top", "center", "bottom")
DEFAULT_TEXT_COLOR = "#FFFFFF"
DEFAULT_FRAME_COLOR = "#06B6D4"
DEFAULT_BORDER_WIDTH = 20

STICKER_MIN_POS, STICKER_MAX_POS = 0.0, 100.0
STICKER_MIN_SCALE, STICKER_MAX_SCALE = 0.5, 2.0

_HEX_COLOR = re.compile(r"^#?[0-9a-fA-F]{6}$")


def _number(value, name: str, default: float | None = None) -> float:
    if value is None or value == "":
        if default is None:
            raise EditSpecError(f"{name} is required")
        return default
    try:
        num = float(value)
    except (TypeError, ValueError):
        raise EditSpecError(f"{name} must be a number, got {value!r}")
    if math.isnan(num):
        raise EditSpecError(f"{name} must be a number, got NaN")
    return num


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def normalize_color(value, default: str = DEFAULT_TEXT_COLOR) -> str:
    if not value or not _HEX_COLOR.match(str(value)):
        return default
    value = str(value).upper()
    return value if value.startswith("#") else f"#{value}"


@dataclass(frozen=True)
class FilterEdit:
    filter_id: str
    type = "filter"


@dataclass(frozen=True)
class FrameEdit:
    png_path: str | None = None
    shape: str | None = None
    color: str = DEFAULT_FRAME_COLOR
    border_width: int = DEFAULT_BORDER_WIDTH
    type = "frame"

    def __post_init__(self):
        if not self.png_path and not self.shape:
            raise EditSpecError("frame needs a pngPath or a shape")
        object.__setattr__(self, "color", normalize_color(self.color, DEFAULT_FRAME_COLOR))
        width = int(clamp(_number(self.border_width, "borderWidth", DEFAULT_BORDER_WIDTH), 1, 200))
        object.__setattr__(self, "border_width", width)


@dataclass(frozen=True)
class TextEdit:
    text: str
    position: str = "bottom"
    color: str = DEFAULT_TEXT_COLOR
    type = "text"

    def __post_init__(self):
        if not isinstance(self.text, str) or not self.text.strip():
            raise EditSpecError("text overlay must be a non-empty string")
        if self.position not in TEXT_POSITIONS:
            object.__setattr__(self, "position", "bottom")
        object.__setattr__(self, "color", normalize_color(self.color))


@dataclass(frozen=True)
class StickerEdit:
    sticker_id: str
    x: float = 50.0
    y: float = 50.0
    scale: float = 1.0
    emoji: str | None = None
    png_file: str | None = None
    type = "sticker"

    def __post_init__(self):
        if not self.sticker_id and not self.emoji:
            raise EditSpecError("sticker needs an id or an emoji")
        # out-of-range placement is clamped, never rejected
        object.__setattr__(self, "x", clamp(_number(self.x, "x", 50.0), STICKER_MIN_POS, STICKER_MAX_POS))
        object.__setattr__(self, "y", clamp(_number(self.y, "y", 50.0), STICKER_MIN_POS, STICKER_MAX_POS))
        object.__setattr__(
            self, "scale", clamp(_number(self.scale, "scale", 1.0), STICKER_MIN_SCALE, STICKER_MAX_SCALE)
        )


EDIT_TYPES = {
    "filter": FilterEdit,
    "frame": FrameEdit,
    "text": TextEdit,
    "sticker": StickerEdit,
}

# filter before overlays, overlays before audio
RENDER_PHASES = {"filter": 0, "frame": 1, "text": 2, "sticker": 3}


@dataclass(frozen=True)
class EditSpec:
    edits: tuple = field(default_factory=tuple)
    music_ref: str | None = None

    def ordered(self) -> list:
        """Edits in render order; sorted() is stable so input order holds within a phase."""
        return sorted(self.edits, key=lambda e: RENDER_PHASES[e.type])

    def of_type(self, kind: str) -> list:
        return [e for e in self.ordered() if e.type == kind]

    def to_dict(self) -> dict:
        return {
            "edits": [{"type": e.type, "params": asdict(e)} for e in self.edits],
            "musicRef": self.music_ref,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "EditSpec":
        """Load the tagged-variant form stored on a VideoJob."""
        data = data or {}
        if not isinstance(data, dict):
            raise EditSpecError("edit spec must be an object")
        edits = []
        for i, item in enumerate(data.get("edits") or []):
            if not isinstance(item, dict):
                raise EditSpecError(f"edits[{i}] must be an object")
            kind = item.get("type")
            edit_cls = EDIT_TYPES.get(kind)
            if edit_cls is None:
                raise EditSpecError(f"edits[{i}]: unsupported edit type {kind!r}")
            params = item.get("params") or {}
            try:
                edits.append(edit_cls(**params))
            except TypeError as exc:
                raise EditSpecError(f"edits[{i}]: {exc}")
        return cls(edits=tuple(edits), music_ref=data.get("musicRef") or None)

    @classmethod
    def from_request(cls, data: dict | None, music_ref: str | None = None) -> "EditSpec":
        """
        Build an edit list from the capture app's compact body:
        {stickers: [{id, x, y, scale}], customText, customTextPosition,
         customTextColor, filterId, framePngPath, frameShape, frameColor, borderWidth}
        A body that already carries "edits" is treated as the tagged form.
        """
        data = data or {}
        if not isinstance(data, dict):
            raise EditSpecError("editSpec must be an object")
        if "edits" in data:
            spec = cls.from_dict(data)
            return cls(edits=spec.edits, music_ref=music_ref or spec.music_ref)

        edits = []
        filter_id = data.get("filterId")
        if filter_id and filter_id != "none":
            edits.append(FilterEdit(filter_id=str(filter_id)))

        if data.get("framePngPath") or data.get("frameShape"):
            edits.append(FrameEdit(
                png_path=data.get("framePngPath") or None,
                shape=data.get("frameShape") or None,
                color=data.get("frameColor") or DEFAULT_FRAME_COLOR,
                border_width=data.get("borderWidth") or DEFAULT_BORDER_WIDTH,
            ))

        text = data.get("customText")
        if isinstance(text, str) and text.strip():
            edits.append(TextEdit(
                text=text.strip(),
                position=data.get("customTextPosition") or "bottom",
                color=data.get("customTextColor") or DEFAULT_TEXT_COLOR,
            ))

        stickers = data.get("stickers") or []
        if not isinstance(stickers, list):
            raise EditSpecError("stickers must be a list")
        for i, s in enumerate(stickers):
            if not isinstance(s, dict):
                raise EditSpecError(f"stickers[{i}] must be an object")
            edits.append(StickerEdit(
                sticker_id=str(s.get("id") or ""),
                x=s.get("x"),
                y=s.get("y"),
                scale=s.get("scale"),
                emoji=s.get("emoji") or None,
                png_file=s.get("pngFile") or None,
            ))

        return cls(edits=tuple(edits), music_ref=music_ref or data.get("musicRef") or None)
