"""Component renderers, the renderer registry and the per-clip error boundary.

A component is procedural visual media: a renderer that draws an RGBA
frame from a props dict. Every render call gets the standard props

    current_time, duration, width, height, progress

plus the clip's own component props, with media references already
resolved to drawable RGBA arrays (see splice.content).

Renderers are looked up by content id. Built-in ids start with
"builtin:". An id of the form "python:package.module:attr" is imported
on first use; attr must be a ComponentRenderer or a plain function.
"""

import importlib
import math

import numpy as np
from PIL import Image, ImageChops, ImageDraw, ImageFilter

from .common import hsl_to_rgb, load_font, parse_rgba, text_size
from .compositor import to_rgba_image
from .failures import FailureLog
from .model import PropDefinition


STANDARD_PROPS = ("current_time", "duration", "width", "height", "progress")
PYTHON_PREFIX = "python:"


class RendererFailure(RuntimeError):
    """A component renderer could not be loaded or raised while drawing."""


# ── Renderer wrappers ────────────────────────────────────────────


class FunctionComponent:
    """Adapts a plain render(props) function to the renderer interface."""

    def __init__(self, fn, prop_definitions: dict[str, PropDefinition] | None = None):
        self.fn = fn
        self.prop_definitions = dict(prop_definitions or {})

    def declared_inputs(self) -> dict[str, PropDefinition]:
        return dict(self.prop_definitions)

    def render(self, props: dict):
        return self.fn(props)

    def __repr__(self):
        return f"FunctionComponent({getattr(self.fn, '__name__', self.fn)!r})"


class ComponentRegistry:
    """Maps content ids to renderers."""

    def __init__(self):
        self._renderers = {}

    def register(self, content_id: str, renderer) -> None:
        if callable(renderer) and not hasattr(renderer, "render"):
            renderer = FunctionComponent(renderer)
        self._renderers[content_id] = renderer

    def __contains__(self, content_id):
        return content_id in self._renderers

    def ids(self) -> list[str]:
        return sorted(self._renderers)

    def get(self, content_id: str):
        """Return the renderer for content_id, importing python: ids on demand.

        Raises:
            KeyError: Unknown content id.
            RendererFailure: A python: id failed to import.
        """
        if content_id in self._renderers:
            return self._renderers[content_id]
        if content_id.startswith(PYTHON_PREFIX):
            renderer = _import_renderer(content_id)
            self.register(content_id, renderer)
            return self._renderers[content_id]
        raise KeyError(f"No renderer registered for '{content_id}'")


def _import_renderer(content_id: str):
    target = content_id[len(PYTHON_PREFIX):]
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise RendererFailure(
            f"Bad component id '{content_id}'. Expected python:package.module:attr"
        )
    try:
        module = importlib.import_module(module_name)
        renderer = getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        raise RendererFailure(f"Could not load '{content_id}': {exc}") from exc
    if not hasattr(renderer, "render") and not callable(renderer):
        raise RendererFailure(f"'{content_id}' is not a renderer")
    return renderer


# ── Error boundary ───────────────────────────────────────────────


class RendererSupervisor:
    """Per-clip error boundary around component rendering.

    A renderer that raises contributes nothing to that frame and leaves a
    FailureRecord; a renderer that cannot be found or loaded is recorded
    once per clip.
    """

    def __init__(self, registry: ComponentRegistry, failures: FailureLog | None = None):
        self.registry = registry
        self.failures = failures if failures is not None else FailureLog()

    def lookup(self, content_id: str, clip_id: int | None = None):
        try:
            return self.registry.get(content_id)
        except (KeyError, RendererFailure) as exc:
            self.failures.record(
                "renderer_missing", str(exc), clip_id=clip_id,
                once_key=("renderer_missing", clip_id, content_id),
            )
            return None

    def render(self, content_id: str, props: dict, clip_id: int | None = None,
               frame: int | None = None):
        """Render content_id with props. Returns an RGBA array or None.

        Output that is not an image or an (h, w), (h, w, 3) or (h, w, 4)
        array counts as a renderer failure.
        """
        renderer = self.lookup(content_id, clip_id)
        if renderer is None:
            return None
        try:
            result = renderer.render(props)
            if result is None:
                raise RendererFailure(f"'{content_id}' returned nothing")
            return np.array(to_rgba_image(result))
        except Exception as exc:
            self.failures.record(
                "renderer", f"{content_id}: {type(exc).__name__}: {exc}",
                clip_id=clip_id, frame=frame,
            )
            return None


# ── Built-in components ──────────────────────────────────────────


def _canvas(props) -> tuple[int, int]:
    return max(1, int(props["width"])), max(1, int(props["height"]))


def render_color_background(props: dict) -> np.ndarray:
    """Diagonal two-stop gradient whose hue cycles once over the clip."""
    w, h = _canvas(props)
    hue = round(props.get("start_hue", 0) + props["progress"] * 360) % 360
    start = np.array(hsl_to_rgb(hue, 0.7, 0.5), dtype=np.float32)
    end = np.array(
        hsl_to_rgb((hue + props.get("end_hue_offset", 60)) % 360, 0.8, 0.4),
        dtype=np.float32,
    )
    xs = np.linspace(0.0, 1.0, w, dtype=np.float32)[None, :]
    ys = np.linspace(0.0, 1.0, h, dtype=np.float32)[:, None]
    t = ((xs + ys) / 2)[:, :, None]
    rgb = start * (1 - t) + end * t
    alpha = np.full((h, w, 1), 255, dtype=np.float32)
    return np.round(np.concatenate([rgb, alpha], axis=2)).astype(np.uint8)


def render_text_overlay(props: dict) -> np.ndarray:
    """Centered caption on a rounded background, fading in and out over 10%."""
    w, h = _canvas(props)
    progress = props["progress"]
    if progress < 0.1:
        opacity = progress / 0.1
    elif progress > 0.9:
        opacity = (1 - progress) / 0.1
    else:
        opacity = 1.0

    img = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    text = str(props.get("text", ""))
    font_size = max(1, round(min(w, h) * 0.08))
    if text:
        font = load_font(font_size)
        text_w, text_h = text_size(text, font)
        pad_x, pad_y = round(font_size * 0.6), round(font_size * 0.3)
        box_w, box_h = text_w + 2 * pad_x, text_h + 2 * pad_y
        left, top = (w - box_w) // 2, (h - box_h) // 2
        draw = ImageDraw.Draw(img)
        draw.rounded_rectangle(
            [(left, top), (left + box_w - 1, top + box_h - 1)],
            radius=8, fill=parse_rgba(props.get("background_color", "#00000066")),
        )
        draw.text((left + pad_x, top + pad_y), text,
                  fill=parse_rgba(props.get("color", "#ffffff")), font=font)

    arr = np.array(img)
    arr[:, :, 3] = np.round(arr[:, :, 3] * max(0.0, min(1.0, opacity))).astype(np.uint8)
    return arr


def render_countdown_timer(props: dict) -> np.ndarray:
    """Whole seconds remaining, an optional label and a draining progress bar."""
    w, h = _canvas(props)
    remaining = max(0, math.ceil(props["duration"] - props["current_time"]))
    color = parse_rgba(props.get("color", "#ffffff"))
    font_size = max(1, round(min(w, h) * 0.3))

    # Radial background #1a1a2e at the center to #0a0a15 at the corners.
    ys, xs = np.mgrid[0:h, 0:w].astype(np.float32)
    dist = np.hypot(xs - w / 2, ys - h / 2) / max(1.0, math.hypot(w / 2, h / 2))
    inner = np.array([0x1A, 0x1A, 0x2E], dtype=np.float32)
    outer = np.array([0x0A, 0x0A, 0x15], dtype=np.float32)
    rgb = inner * (1 - dist[:, :, None]) + outer * dist[:, :, None]
    img = Image.fromarray(np.round(rgb).astype(np.uint8)).convert("RGBA")
    draw = ImageDraw.Draw(img)

    digits = str(remaining)
    font = load_font(font_size)
    digits_w, digits_h = text_size(digits, font)
    y = (h - digits_h) // 2
    draw.text(((w - digits_w) // 2, y), digits, fill=color, font=font)
    y += digits_h

    label = str(props.get("label", ""))
    if label:
        small = load_font(max(1, round(font_size * 0.15)))
        label_w, label_h = text_size(label, small)
        y += round(font_size * 0.1)
        draw.text(((w - label_w) // 2, y), label, fill=(*color[:3], 178), font=small)
        y += label_h

    bar_w = font_size * 2
    bar_left = (w - bar_w) // 2
    y += round(font_size * 0.15)
    draw.rectangle([(bar_left, y), (bar_left + bar_w, y + 3)], fill=(255, 255, 255, 38))
    filled = round(bar_w * (1 - props["progress"]))
    if filled > 0:
        draw.rectangle([(bar_left, y), (bar_left + filled, y + 3)], fill=(100, 180, 255, 255))
    return np.array(img)


def render_box(props: dict) -> np.ndarray:
    """Rounded colored box with optional drop shadow and a child in its padding."""
    w, h = _canvas(props)
    radius = max(0.0, float(props.get("border_radius", 0)))
    padding = max(0, int(props.get("padding", 0)))
    box = [(0, 0), (w - 1, h - 1)]

    img = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    if props.get("shadow"):
        shadow = Image.new("L", (w, h), 0)
        ImageDraw.Draw(shadow).rounded_rectangle(
            [(0, 4), (w - 1, h - 1)], radius=radius, fill=77,
        )
        shadow = shadow.filter(ImageFilter.GaussianBlur(8))
        img.putalpha(shadow)

    layer = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    ImageDraw.Draw(layer).rounded_rectangle(
        box, radius=radius, fill=parse_rgba(props.get("color", "#4a90d9")),
    )
    img = Image.alpha_composite(img, layer)

    child = props.get("child")
    inner_w, inner_h = w - 2 * padding, h - 2 * padding
    if child is not None and inner_w > 0 and inner_h > 0:
        child_img = Image.fromarray(np.asarray(child, dtype=np.uint8)).convert("RGBA")
        child_img = child_img.resize((inner_w, inner_h), resample=Image.BICUBIC)
        child_layer = Image.new("RGBA", (w, h), (0, 0, 0, 0))
        child_layer.paste(child_img, (padding, padding))
        # Clip the child to the box's rounded corners.
        clip_alpha = Image.new("L", (w, h), 0)
        ImageDraw.Draw(clip_alpha).rounded_rectangle(box, radius=radius, fill=255)
        child_layer.putalpha(ImageChops.multiply(child_layer.getchannel("A"), clip_alpha))
        img = Image.alpha_composite(img, child_layer)
    return np.array(img)


BUILTIN_COMPONENTS = {
    "builtin:color-background": (render_color_background, {
        "start_hue": PropDefinition("number", 0, "Start Hue", 0, 360, 1),
        "end_hue_offset": PropDefinition("number", 60, "Hue Offset", 0, 360, 1),
    }),
    "builtin:text-overlay": (render_text_overlay, {
        "text": PropDefinition("string", "Sample Text", "Text"),
        "color": PropDefinition("color", "#ffffff", "Text Color"),
        "background_color": PropDefinition("color", "#00000066", "Background"),
    }),
    "builtin:countdown-timer": (render_countdown_timer, {
        "label": PropDefinition("string", "", "Label"),
        "color": PropDefinition("color", "#ffffff", "Color"),
    }),
    "builtin:box": (render_box, {
        "color": PropDefinition("color", "#4a90d9", "Color"),
        "border_radius": PropDefinition("number", 0, "Border Radius", 0, 500, 1),
        "padding": PropDefinition("number", 0, "Padding", 0, 500, 1),
        "shadow": PropDefinition("boolean", False, "Shadow"),
        "child": PropDefinition("media", "", "Child"),
    }),
}


def builtin_registry() -> ComponentRegistry:
    """A registry holding every built-in component."""
    registry = ComponentRegistry()
    for content_id, (fn, definitions) in BUILTIN_COMPONENTS.items():
        registry.register(content_id, FunctionComponent(fn, definitions))
    return registry
