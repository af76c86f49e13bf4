"""
ffmpeg compositing for thank-you videos.

Edits are applied in a fixed order (scale, color filter, frame, text,
stickers, audio) so the same source and edit list always produce the same
filter graph. Decorations without a PNG are rasterised from their emoji
glyph with Pillow and overlaid exactly like a PNG sticker.
"""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from django.conf import settings
from PIL import Image, ImageDraw, ImageFont

from . import catalog
from .edits import EditSpec
from .errors import ArtifactNotFound, RenderError, TransientError

logger = logging.getLogger(__name__)

WIDTH, HEIGHT = 1080, 1920
STICKER_BASE_PX = 240
MIN_STICKER_BYTES = 100

# text layout: 80px padding each side, max ~1/4 of the frame height
TEXT_MAX_WIDTH = 920
TEXT_BASE_FONT = 72
TEXT_MIN_FONT = 48
TEXT_CHAR_RATIO = 0.6
TEXT_MAX_HEIGHT = 480
TEXT_LINE_PX = 90

TEXT_Y = {
    "top": "58",
    "center": "(h-text_h)/2",
    # keep bottom text below the 75% mark
    "bottom": "max(1440-text_h\\,h-text_h-154)",
}

MUSIC_VOLUME = 0.35


@dataclass(frozen=True)
class StickerLayer:
    path: Path
    x: float
    y: float
    scale: float
    from_glyph: bool = False

    @property
    def size(self) -> int:
        return round(STICKER_BASE_PX * self.scale)

    def position(self) -> tuple[int, int]:
        """Top-left pixel so the sticker is centred on (x%, y%)."""
        half = round(self.size / 2)
        return round(self.x / 100 * WIDTH) - half, round(self.y / 100 * HEIGHT) - half


def _wrap(words: list[str], chars_per_line: int) -> list[str]:
    lines, current = [], ""
    for word in words:
        candidate = f"{current} {word}" if current else word
        if len(candidate) <= chars_per_line:
            current = candidate
        else:
            if current:
                lines.append(current)
            current = word
    if current:
        lines.append(current)
    return lines


def wrap_text(text: str) -> tuple[list[str], int]:
    """Word-wrap overlay text; shrink the font (down to 48px) when it runs long."""
    words = text.split()
    font_size = TEXT_BASE_FONT
    lines = _wrap(words, int(TEXT_MAX_WIDTH / (font_size * TEXT_CHAR_RATIO)))

    max_lines = TEXT_MAX_HEIGHT // TEXT_LINE_PX
    if len(lines) > max_lines:
        font_size = max(TEXT_MIN_FONT, int(TEXT_BASE_FONT * max_lines / len(lines)))
        if font_size < TEXT_BASE_FONT * 0.8:
            lines = _wrap(words, int(TEXT_MAX_WIDTH / (font_size * TEXT_CHAR_RATIO)))
    return lines, font_size


def _emoji_font(font_path: str, size: int):
    if font_path:
        # color bitmap fonts (Noto Color Emoji) only load at their native 109px
        for candidate in (size, 109):
            try:
                return ImageFont.truetype(font_path, candidate)
            except OSError:
                continue
        logger.warning("emoji font %s could not be loaded, using default font", font_path)
    return ImageFont.load_default(size=size)


def render_glyph(glyph: str, size: int, out_path, font_path: str = "") -> Path:
    """Rasterise an emoji glyph into a transparent size x size PNG."""
    font = _emoji_font(font_path, size)
    canvas = Image.new("RGBA", (size * 2, size * 2), (255, 255, 255, 0))
    draw = ImageDraw.Draw(canvas)

    left, top, right, bottom = draw.textbbox((0, 0), glyph, font=font)
    pos = ((canvas.width - (right - left)) // 2 - left, (canvas.height - (bottom - top)) // 2 - top)
    draw.text(pos, glyph, font=font, fill=(255, 255, 255, 255), embedded_color=True)

    bbox = canvas.getbbox()
    if bbox:
        canvas = canvas.crop(bbox)
    canvas.thumbnail((size, size))
    tile = Image.new("RGBA", (size, size), (255, 255, 255, 0))
    tile.paste(canvas, ((size - canvas.width) // 2, (size - canvas.height) // 2))

    out_path = Path(out_path)
    tile.save(out_path, format="PNG")
    return out_path


def build_command(
    *,
    ffmpeg: str,
    source: Path,
    spec: EditSpec,
    output: Path,
    frame_png: Path | None = None,
    stickers: list[StickerLayer] = (),
    text_file: Path | None = None,
    text_font_size: int = TEXT_BASE_FONT,
    music: str | None = None,
    source_has_audio: bool = True,
) -> list[str]:
    """Assemble the ffmpeg argument list. Pure function of its inputs."""
    cmd = [ffmpeg, "-y", "-i", str(source)]
    next_input = 1

    frame_idx = None
    if frame_png is not None:
        cmd += ["-i", str(frame_png)]
        frame_idx, next_input = next_input, next_input + 1

    sticker_idx = []
    for layer in stickers:
        cmd += ["-i", str(layer.path)]
        sticker_idx.append(next_input)
        next_input += 1

    music_idx = None
    if music:
        cmd += ["-i", music]
        music_idx = next_input

    parts = [
        f"[0:v]scale={WIDTH}:{HEIGHT}:force_original_aspect_ratio=decrease,"
        f"pad={WIDTH}:{HEIGHT}:(ow-iw)/2:(oh-ih)/2[scaled]"
    ]
    current = "[scaled]"

    for edit in spec.of_type("filter"):
        graph = catalog.FILTERS.get(edit.filter_id)
        if graph is None:
            logger.warning("unknown filter %r skipped", edit.filter_id)
            continue
        if not graph:
            continue
        parts.append(f"{current}{graph}[filtered]")
        current = "[filtered]"

    for edit in spec.of_type("frame"):
        if frame_idx is not None:
            key = "colorkey=black:0.1:0.1," if edit.shape == "ai-generated" else ""
            parts.append(f"[{frame_idx}:v]{key}scale={WIDTH}:{HEIGHT}[frame]")
            parts.append(f"{current}[frame]overlay=0:0[framed]")
            current = "[framed]"
        elif edit.shape in catalog.FRAME_SHAPES:
            color = edit.color.replace("#", "0x")
            parts.append(f"{current}{catalog.FRAME_SHAPES[edit.shape](color, edit.border_width)}[framed]")
            current = "[framed]"
        else:
            logger.warning("frame shape %r not supported, no frame drawn", edit.shape)
        break  # one frame per video

    texts = spec.of_type("text")
    if texts and text_file is not None:
        edit = texts[0]
        line_gap = round(text_font_size * 1.3) - text_font_size
        parts.append(
            f"{current}drawtext=textfile='{text_file}':fontsize={text_font_size}"
            f":fontcolor=0x{edit.color.lstrip('#')}:x=(w-text_w)/2:y={TEXT_Y[edit.position]}"
            f":box=1:boxcolor=black@0.5:boxborderw=20:line_spacing={line_gap}[texted]"
        )
        current = "[texted]"

    for n, (layer, idx) in enumerate(zip(stickers, sticker_idx)):
        px, py = layer.position()
        parts.append(f"[{idx}:v]scale={layer.size}:{layer.size}[sticker{n}]")
        parts.append(f"{current}[sticker{n}]overlay={px}:{py}[stickered{n}]")
        current = f"[stickered{n}]"

    audio_map = ["-map", "0:a?"]
    if music_idx is not None:
        if source_has_audio:
            parts.append(f"[{music_idx}:a]volume={MUSIC_VOLUME}[bgm]")
            parts.append("[0:a][bgm]amix=inputs=2:duration=first:dropout_transition=2[aout]")
            audio_map = ["-map", "[aout]"]
        else:
            audio_map = ["-map", f"{music_idx}:a", "-shortest"]

    cmd += ["-filter_complex", ";".join(parts), "-map", current, *audio_map]
    cmd += [
        "-c:v", "libx264",
        "-preset", "veryfast",
        "-crf", "25",
        "-c:a", "aac",
        "-b:a", "128k",
        "-movflags", "+faststart",
        str(output),
    ]
    return cmd


class Compositor:
    """Fetches decoration assets, builds the ffmpeg command and runs it."""

    def __init__(self, store, *, timeout: int | None = None):
        conf = settings.VIDEO_PIPELINE
        self.store = store
        self.ffmpeg = conf["FFMPEG_BINARY"]
        self.ffprobe = conf["FFPROBE_BINARY"]
        self.emoji_font = conf["EMOJI_FONT_PATH"]
        self.timeout = timeout or max(30, conf["SOFT_TIME_LIMIT"] - 30)

    def render(self, source: Path, spec: EditSpec, workdir: Path) -> Path:
        workdir = Path(workdir)
        output = workdir / "output.mp4"

        frame_png = self._fetch_frame(spec, workdir)
        stickers = self._prepare_stickers(spec, workdir)

        text_file, font_size = None, TEXT_BASE_FONT
        texts = spec.of_type("text")
        if texts:
            lines, font_size = wrap_text(texts[0].text)
            # a text file sidesteps filtergraph escaping of user text
            text_file = workdir / "overlay_text.txt"
            text_file.write_text("\n".join(lines), encoding="utf-8")

        music = self._resolve_music(spec.music_ref, workdir)
        has_audio = self.has_audio(source) if music else True

        cmd = build_command(
            ffmpeg=self.ffmpeg,
            source=source,
            spec=spec,
            output=output,
            frame_png=frame_png,
            stickers=stickers,
            text_file=text_file,
            text_font_size=font_size,
            music=music,
            source_has_audio=has_audio,
        )
        logger.info("running ffmpeg with %d inputs", cmd.count("-i"))
        self._run(cmd, output)
        return output

    def _run(self, cmd: list[str], output: Path) -> None:
        try:
            subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            raise TransientError(f"ffmpeg exceeded {self.timeout}s")
        except FileNotFoundError:
            raise RenderError(f"ffmpeg binary not found: {self.ffmpeg}")
        except subprocess.CalledProcessError as e:
            err = e.stderr.decode("utf-8", errors="ignore") if e.stderr else str(e)
            # ffmpeg sometimes exits non-zero after writing a usable file
            if output.exists() and output.stat().st_size > 0:
                logger.warning("ffmpeg exited %s but produced output: %s", e.returncode, err[-500:])
                return
            raise RenderError(f"ffmpeg failed: {err[-2000:]}")
        if not output.exists() or output.stat().st_size == 0:
            raise RenderError("ffmpeg produced no output")

    def has_audio(self, source: Path) -> bool:
        cmd = [
            self.ffprobe, "-v", "error",
            "-select_streams", "a",
            "-show_entries", "stream=index",
            "-of", "csv=p=0",
            str(source),
        ]
        try:
            result = subprocess.run(cmd, check=True, capture_output=True, text=True, timeout=30)
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning("ffprobe failed, assuming silent source: %s", exc)
            return False
        return bool(result.stdout.strip())

    def _fetch_frame(self, spec: EditSpec, workdir: Path) -> Path | None:
        frames = [e for e in spec.of_type("frame") if e.png_path]
        if not frames:
            return None
        png_path = frames[0].png_path
        local = workdir / "frame.png"
        for key in (png_path, f"{settings.FRAME_KEY_PREFIX}/{png_path}"):
            try:
                return self.store.download(key, local)
            except ArtifactNotFound:
                continue
        logger.warning("frame %s not found, falling back to drawn border", png_path)
        return None

    def _prepare_stickers(self, spec: EditSpec, workdir: Path) -> list[StickerLayer]:
        layers = []
        for i, edit in enumerate(spec.of_type("sticker")):
            png, glyph = catalog.sticker_assets(edit.sticker_id, edit.emoji, edit.png_file)
            local = workdir / f"sticker_{i}.png"
            fetched = False
            if png:
                try:
                    self.store.download(f"{settings.STICKER_KEY_PREFIX}/{png}", local)
                    fetched = local.stat().st_size >= MIN_STICKER_BYTES
                except ArtifactNotFound:
                    fetched = False
            layer = StickerLayer(path=local, x=edit.x, y=edit.y, scale=edit.scale, from_glyph=not fetched)
            if not fetched:
                logger.info("sticker %r has no raster asset, drawing glyph", edit.sticker_id or glyph)
                render_glyph(glyph, layer.size, local, self.emoji_font)
            layers.append(layer)
        return layers

    def _resolve_music(self, music_ref: str | None, workdir: Path) -> str | None:
        if not music_ref:
            return None
        if music_ref.startswith(("http://", "https://")):
            return music_ref
        local = workdir / f"music{Path(music_ref).suffix or '.mp3'}"
        for key in (music_ref, f"{settings.MUSIC_KEY_PREFIX}/{music_ref}"):
            try:
                return str(self.store.download(key, local))
            except ArtifactNotFound:
                continue
        logger.warning("music %s not found, rendering without it", music_ref)
        return None
