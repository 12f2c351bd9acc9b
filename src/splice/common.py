"""splice.common — shared utilities for rendering and configuration.

Contains: color parsing, path variable resolution, font loading and
text measurement.
"""

import re
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont


# ── Font paths ─────────────────────────────────────────────────────
# Inter preferred for clean overlays, DejaVu Sans as fallback.

FONT_PATHS = [
    Path.home() / ".local/share/fonts/Inter.ttc",
    Path("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"),
]

_HEX_DIGITS = set("0123456789abcdefABCDEF")


# ── Color utilities ────────────────────────────────────────────────

def parse_hex_color(hex_str: str) -> tuple[int, int, int]:
    """Convert '#RRGGBB' or 'RRGGBB' string to (R, G, B) tuple."""
    hex_str = hex_str.lstrip("#")
    return (int(hex_str[0:2], 16), int(hex_str[2:4], 16), int(hex_str[4:6], 16))


def parse_rgba(value: str) -> tuple[int, int, int, int]:
    """Parse '#RRGGBB' or '#RRGGBBAA' into (R, G, B, A).

    Alpha defaults to 255 when omitted.
    """
    digits = value.lstrip("#")
    if len(digits) not in (6, 8) or not set(digits) <= _HEX_DIGITS:
        raise ValueError(f"Invalid color: '{value}'. Expected #RRGGBB or #RRGGBBAA.")
    alpha = int(digits[6:8], 16) if len(digits) == 8 else 255
    return (*parse_hex_color(digits[:6]), alpha)


def hsl_to_rgb(hue: float, saturation: float, lightness: float) -> tuple[int, int, int]:
    """HSL (hue in degrees, s/l in 0-1) to an (R, G, B) tuple."""
    hue = (hue % 360) / 60.0
    chroma = (1 - abs(2 * lightness - 1)) * saturation
    x = chroma * (1 - abs(hue % 2 - 1))
    sector = int(hue) % 6
    r, g, b = [
        (chroma, x, 0), (x, chroma, 0), (0, chroma, x),
        (0, x, chroma), (x, 0, chroma), (chroma, 0, x),
    ][sector]
    m = lightness - chroma / 2
    return tuple(round((c + m) * 255) for c in (r, g, b))


# ── Path utilities ─────────────────────────────────────────────────

def resolve_path_vars(text: str, paths: dict[str, str]) -> str:
    """Replace ${name} variables in a string using the paths dict."""
    def _replace(match):
        key = match.group(1)
        if key not in paths:
            raise ValueError(f"Unknown path variable: ${{{key}}}")
        return paths[key]
    return re.sub(r"\$\{(\w+)\}", _replace, text)


# ── Font loading ───────────────────────────────────────────────────

def load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load Inter (or fallback) at the given size.

    Inter.ttc is a font collection. Index 0 = Regular.
    """
    for font_path in FONT_PATHS:
        if font_path.exists():
            try:
                return ImageFont.truetype(str(font_path), size=size, index=0)
            except (OSError, IndexError):
                continue
    # Last resort: Pillow default font.
    return ImageFont.load_default()


# ── Text rendering ─────────────────────────────────────────────────

def text_size(text: str, font) -> tuple[int, int]:
    """Pixel (width, height) of text drawn with font."""
    draw = ImageDraw.Draw(Image.new("RGBA", (1, 1)))
    bbox = draw.textbbox((0, 0), text, font=font)
    return bbox[2] - bbox[0], bbox[3] - bbox[1]
