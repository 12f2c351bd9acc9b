"""Pixel compositing: clip content + placement -> canvas frame.

Content arrives as an RGBA numpy array (or a Pillow image). Each layer
is resized to its placement box, clipped by its mask alpha, rotated
about the box center and alpha-blended onto an RGB frame in z-order.
Everything here is deterministic for identical inputs.
"""

import numpy as np
from PIL import Image, ImageChops, ImageDraw, ImageFilter, ImageOps

from .model import Mask
from .resolver import Placement


BACKGROUND = (0, 0, 0)


def to_rgba_image(content) -> Image.Image:
    """Normalize renderer output (ndarray or PIL image) to a Pillow RGBA image."""
    if isinstance(content, Image.Image):
        return content.convert("RGBA")
    arr = np.asarray(content)
    if arr.dtype != np.uint8:
        arr = np.clip(arr, 0, 255).astype(np.uint8)
    if arr.ndim == 2:
        return Image.fromarray(arr).convert("RGBA")
    if arr.ndim != 3 or arr.shape[2] not in (3, 4):
        raise ValueError(f"Expected (h, w, 3|4) content, got shape {arr.shape}")
    if arr.shape[2] == 3:
        return Image.fromarray(arr).convert("RGBA")
    return Image.fromarray(arr)


# ── Masks ────────────────────────────────────────────────────────


def build_mask_alpha(mask: Mask, size: tuple[int, int]) -> Image.Image:
    """Render a mask as an "L" alpha image covering a clip box of size (w, h).

    Mask geometry is normalized to the box: center (0.5, 0.5) with
    width/height 1.0 covers the whole box. rotation turns the shape
    clockwise about its own center, feather is a gaussian blur radius in
    pixels and invert swaps inside and outside.
    """
    w, h = size
    alpha = Image.new("L", (w, h), 0)
    draw = ImageDraw.Draw(alpha)

    cx, cy = mask.center_x * w, mask.center_y * h
    mw, mh = mask.width * w, mask.height * h
    box = [cx - mw / 2, cy - mh / 2, cx + mw / 2, cy + mh / 2]
    if mw > 0 and mh > 0:
        if mask.shape == "ellipse":
            draw.ellipse(box, fill=255)
        elif mask.border_radius > 0:
            radius = max(0.0, min(mask.border_radius, 0.5)) * min(mw, mh)
            draw.rounded_rectangle(box, radius=radius, fill=255)
        else:
            draw.rectangle(box, fill=255)

    if mask.rotation:
        alpha = alpha.rotate(-mask.rotation, center=(cx, cy), resample=Image.BICUBIC)
    if mask.feather > 0:
        alpha = alpha.filter(ImageFilter.GaussianBlur(mask.feather))
    if mask.invert:
        alpha = ImageOps.invert(alpha)
    return alpha


# ── Layer placement ──────────────────────────────────────────────


def place_content(content, placement: Placement) -> tuple[np.ndarray, int, int] | None:
    """Transform content into an RGBA patch positioned on the canvas.

    Returns (patch, x, y) with (x, y) the patch's top-left corner in
    canvas pixels (may be negative), or None if the box is empty.
    """
    w, h = round(placement.width), round(placement.height)
    if w < 1 or h < 1:
        return None

    img = to_rgba_image(content)
    if img.size != (w, h):
        img = img.resize((w, h), resample=Image.BICUBIC)

    if placement.mask is not None:
        alpha = build_mask_alpha(placement.mask, (w, h))
        img.putalpha(ImageChops.multiply(img.getchannel("A"), alpha))

    if placement.rotation:
        # Pillow rotates counter-clockwise; placement rotation is clockwise.
        img = img.rotate(-placement.rotation, expand=True, resample=Image.BICUBIC)

    cx, cy = placement.center
    x = round(cx - img.width / 2)
    y = round(cy - img.height / 2)
    return np.array(img), x, y


def alpha_blend(frame: np.ndarray, patch: np.ndarray, x: int, y: int) -> np.ndarray:
    """Alpha-blend an RGBA patch onto an RGB frame in place at (x, y).

    Parts of the patch outside the frame are cropped.
    """
    frame_h, frame_w = frame.shape[:2]
    patch_h, patch_w = patch.shape[:2]

    x0, y0 = max(0, x), max(0, y)
    x1, y1 = min(frame_w, x + patch_w), min(frame_h, y + patch_h)
    if x0 >= x1 or y0 >= y1:
        return frame

    crop = patch[y0 - y:y1 - y, x0 - x:x1 - x]
    alpha = crop[:, :, 3:4].astype(np.float32) / 255.0
    rgb = crop[:, :, :3].astype(np.float32)
    dest = frame[y0:y1, x0:x1].astype(np.float32)
    blended = dest * (1 - alpha) + rgb * alpha
    frame[y0:y1, x0:x1] = np.round(blended).astype(np.uint8)
    return frame


def blank_frame(canvas_size: tuple[int, int]) -> np.ndarray:
    w, h = canvas_size
    frame = np.empty((h, w, 3), dtype=np.uint8)
    frame[:, :] = BACKGROUND
    return frame


def composite_frame(layers, canvas_size: tuple[int, int]) -> np.ndarray:
    """Composite (content, placement) layers bottom-first onto a black frame.

    Returns an (h, w, 3) uint8 array.
    """
    frame = blank_frame(canvas_size)
    for content, placement in layers:
        placed = place_content(content, placement)
        if placed is None:
            continue
        patch, x, y = placed
        alpha_blend(frame, patch, x, y)
    return frame
