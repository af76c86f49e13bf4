"""
Static decoration tables used while compositing.

Sticker PNGs live in the store under STICKER_KEY_PREFIX; ids missing here are
still renderable through the emoji-glyph fallback.
"""

DEFAULT_STICKER_EMOJI = "✨"  # sparkles

# sticker id -> (emoji, png file)
STICKERS = {
    "star": ("⭐", "fluent-star.png"),
    "heart": ("❤️", "fluent-red-heart.png"),
    "balloon": ("\U0001f388", "fluent-balloon.png"),
    "confetti": ("\U0001f38a", "fluent-confetti.png"),
    "sparkle": ("✨", "fluent-sparkles.png"),
    "gift": ("\U0001f381", "fluent-gift.png"),
    "smile": ("\U0001f60a", "fluent-smile.png"),
    "rainbow": ("\U0001f308", "fluent-rainbow.png"),
    "cake": ("\U0001f382", "fluent-cake.png"),
    "party": ("\U0001f389", "fluent-party-popper.png"),
    "cupcake": ("\U0001f9c1", "fluent-cupcake.png"),
    "unicorn": ("\U0001f984", "fluent-unicorn.png"),
    "crown": ("\U0001f451", "fluent-crown.png"),
    "sun": ("\U0001f31e", "fluent-sun.png"),
    "butterfly": ("\U0001f98b", "fluent-butterfly.png"),
    "fire": ("\U0001f525", "fluent-fire.png"),
}

# legacy clients send only the emoji
EMOJI_TO_PNG = {emoji: png for emoji, png in STICKERS.values()}
EMOJI_TO_PNG.update({
    "❤": "fluent-red-heart.png",
    "\U0001f496": "fluent-sparkling-heart.png",
    "\U0001f495": "fluent-two-hearts.png",
    "\U0001f31f": "fluent-glowing-star.png",
    "\U0001f36d": "fluent-lollipop.png",
    "\U0001f380": "fluent-ribbon.png",
    "\U0001f436": "fluent-dog.png",
    "\U0001f43b": "fluent-bear.png",
    "\U0001f430": "fluent-bunny.png",
    "\U0001f43c": "fluent-panda.png",
})

FILTERS = {
    "none": "",
    "warm": "colortemperature=8000",
    "cool": "colortemperature=4000",
    "vintage": "eq=saturation=0.7:brightness=0.05:contrast=1.1,colorbalance=rs=0.1:gs=-0.05:bs=-0.1",
    "sepia": "colorchannelmixer=.393:.769:.189:0:.349:.686:.168:0:.272:.534:.131",
    "bw": "hue=s=0,eq=contrast=1.2",
    "vignette": "vignette=PI/4",
    "bright": "eq=brightness=0.15:gamma=1.1",
    "vivid": "eq=saturation=1.5",
    "pop": "eq=contrast=1.3:saturation=1.2",
    "dreamy": "gblur=sigma=1.5,eq=brightness=0.08:saturation=0.9",
    "pixel": "scale=iw/8:ih/8,scale=iw*8:ih*8:flags=neighbor",
    "blur": "gblur=sigma=3",
    "comic": "edgedetect=low=0.1:high=0.3,negate,eq=contrast=2:brightness=0.1",
    "sketch": "edgedetect=low=0.1:high=0.4,negate",
    "noir": "hue=s=0,eq=contrast=1.5:brightness=-0.05",
    "sunset": "colortemperature=3500,eq=saturation=1.3:brightness=0.05,vignette=PI/5",
    "neon": "eq=saturation=2.5:contrast=1.4:brightness=0.1,unsharp=5:5:2",
    "filmgrain": "noise=alls=25:allf=t,eq=saturation=0.9:contrast=1.1",
    "vhs": "curves=vintage,noise=alls=30:allf=t,eq=saturation=0.8:contrast=1.1,vignette=PI/3",
    # legacy ids
    "chrome": "eq=saturation=1.4:contrast=1.1",
    "fade": "curves=vintage",
    "instant": "colortemperature=6500,eq=saturation=0.8",
}


def _solid_border(color: str, width: int) -> str:
    return ",".join([
        f"drawbox=x=0:y=0:w={width}:h=ih:color={color}:t=fill",
        f"drawbox=x=iw-{width}:y=0:w={width}:h=ih:color={color}:t=fill",
        f"drawbox=x=0:y=0:w=iw:h={width}:color={color}:t=fill",
        f"drawbox=x=0:y=ih-{width}:w=iw:h={width}:color={color}:t=fill",
    ])


def _double_border(color: str, width: int) -> str:
    inner = int(width * 0.6)
    gap = int(width * 0.2)
    outer = inner + gap + 4
    return ",".join([
        _solid_border(color, outer),
        f"drawbox=x={gap}:y={gap}:w={inner}:h=ih-{gap}*2:color=black@0.3:t=fill",
        f"drawbox=x=iw-{gap}-{inner}:y={gap}:w={inner}:h=ih-{gap}*2:color=black@0.3:t=fill",
    ])


# frame shape id -> builder(color "0xRRGGBB", border width px) -> filter chain
FRAME_SHAPES = {
    "bold-classic": _solid_border,
    "rounded-thick": _solid_border,
    "neon-glow": _solid_border,
    "scalloped-edge": _solid_border,
    "dashed-fun": _solid_border,
    "gradient-glow": _solid_border,
    "double-line": _double_border,
    "ai-generated": lambda color, width: _double_border(color, max(width, 20)),
}


def sticker_assets(sticker_id: str, emoji: str | None = None, png_file: str | None = None):
    """Return (png file or None, emoji glyph) for a sticker entry."""
    known_emoji, known_png = STICKERS.get(sticker_id, (None, None))
    glyph = emoji or known_emoji or DEFAULT_STICKER_EMOJI
    png = png_file or known_png or (EMOJI_TO_PNG.get(emoji) if emoji else None)
    return png, glyph
