from __future__ import annotations

import io
import json
import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont

from content_studio.errors import InvalidInputError

logger = logging.getLogger(__name__)

FORMATS = {"png": ("PNG", "image/png"), "jpeg": ("JPEG", "image/jpeg"), "jpg": ("JPEG", "image/jpeg")}


@dataclass(frozen=True)
class RenderedThumbnail:
    image: Image.Image
    scrim_applied: bool


@dataclass(frozen=True)
class Layer:
    name: str
    image: Image.Image
    offset: tuple[int, int] = (0, 0)
    opacity: float = 1.0


def render_thumbnail(
    image: Image.Image,
    size: tuple[int, int],
    text: str | None = None,
    text_color_hex: str = "#ffffff",
) -> RenderedThumbnail:
    """
    Flat export of a generated thumbnail:
    - resize to the canvas without stretching (cover-crop)
    - when there is overlay text, add a bottom gradient scrim and fit the text above it
    """
    layers = build_layer_stack(image, size, text=text, text_color_hex=text_color_hex)
    canvas = Image.new("RGBA", size, (0, 0, 0, 0))
    for layer in layers:
        canvas.alpha_composite(layer.image.convert("RGBA"), dest=layer.offset)
    return RenderedThumbnail(image=canvas.convert("RGB"), scrim_applied=any(layer.name == "scrim" for layer in layers))


def build_layer_stack(
    image: Image.Image,
    size: tuple[int, int],
    text: str | None = None,
    text_color_hex: str = "#ffffff",
) -> list[Layer]:
    """Background, scrim and text as separate RGBA layers in z-order."""
    background = _resize_cover(image.convert("RGB"), size).convert("RGBA")
    layers = [Layer("background", background)]
    text = (text or "").strip()
    if not text:
        return layers

    scrim_h = int(size[1] * _scrim_fraction(size))
    scrim_y0 = size[1] - scrim_h
    scrim = _apply_bottom_gradient_scrim(Image.new("RGBA", size, (0, 0, 0, 0)), y0=scrim_y0, max_alpha=200)
    layers.append(Layer("scrim", scrim))

    text_layer = Image.new("RGBA", size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(text_layer)
    pad = int(size[0] * 0.05)
    box = (pad, scrim_y0 + pad // 2, size[0] - pad, size[1] - pad // 2)
    font, wrapped, spacing = _fit_text_to_box(
        draw,
        text,
        box,
        max_font_px=int((box[3] - box[1]) * 0.6),
        min_font_px=max(18, int(size[0] * 0.026)),
    )
    r, g, b = _hex_to_rgb(text_color_hex)
    _draw_multiline(draw, wrapped, (box[0], box[1]), font=font, fill=(r, g, b, 255), spacing=spacing, shadow=True)

    bbox = text_layer.getbbox()
    if bbox is None:
        return layers
    layers.append(Layer("text", text_layer.crop(bbox), offset=(bbox[0], bbox[1])))
    return layers


def bundle_layers(layers: list[Layer], canvas_size: tuple[int, int]) -> bytes:
    """ZIP with one PNG per layer plus a manifest describing how to stack them."""
    manifest = {"canvas": {"width": canvas_size[0], "height": canvas_size[1]}, "layers": []}
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
        for idx, layer in enumerate(layers, start=1):
            name = f"{idx:02d}_{layer.name}.png"
            zf.writestr(name, encode_image(layer.image, "png"))
            manifest["layers"].append(
                {
                    "name": layer.name,
                    "file": name,
                    "offset": {"x": layer.offset[0], "y": layer.offset[1]},
                    "size": {"width": layer.image.width, "height": layer.image.height},
                    "opacity": layer.opacity,
                }
            )
        zf.writestr("manifest.json", json.dumps(manifest, indent=2))
    return buf.getvalue()


def encode_image(img: Image.Image, fmt: str, quality: int = 92) -> bytes:
    key = (fmt or "").strip().lower()
    if key not in FORMATS:
        raise InvalidInputError(f"Unsupported image format '{fmt}'", details={"supported": sorted(FORMATS)})
    pil_format, _ = FORMATS[key]
    buf = io.BytesIO()
    if pil_format == "JPEG":
        if img.mode in ("RGBA", "LA", "P"):
            flat = Image.new("RGB", img.size, (255, 255, 255))
            rgba = img.convert("RGBA")
            flat.paste(rgba, mask=rgba.split()[3])
            img = flat
        else:
            img = img.convert("RGB")
        img.save(buf, format="JPEG", quality=quality)
    else:
        img.save(buf, format="PNG")
    return buf.getvalue()


def media_type_for(fmt: str) -> str:
    key = (fmt or "").strip().lower()
    if key not in FORMATS:
        raise InvalidInputError(f"Unsupported image format '{fmt}'", details={"supported": sorted(FORMATS)})
    return FORMATS[key][1]


def _draw_multiline(
    draw: ImageDraw.ImageDraw,
    text: str,
    xy: tuple[int, int],
    font,
    fill,
    spacing: int,
    shadow: bool = False,
) -> None:
    x, y = xy
    if shadow:
        draw.multiline_text((x + 3, y + 3), text, font=font, fill=(0, 0, 0, 200), spacing=spacing)
    draw.multiline_text((x, y), text, font=font, fill=fill, spacing=spacing)


def _resize_cover(img: Image.Image, size: tuple[int, int]) -> Image.Image:
    """
    Resize to cover the target canvas (no stretching), then center-crop.
    """
    tw, th = size
    iw, ih = img.size
    if iw <= 0 or ih <= 0:
        return img.resize(size, Image.Resampling.LANCZOS)

    scale = max(tw / iw, th / ih)
    nw, nh = max(tw, round(iw * scale)), max(th, round(ih * scale))
    resized = img.resize((nw, nh), Image.Resampling.LANCZOS)

    left = max(0, (nw - tw) // 2)
    top = max(0, (nh - th) // 2)
    return resized.crop((left, top, left + tw, top + th))


def _apply_bottom_gradient_scrim(img_rgba: Image.Image, y0: int, max_alpha: int) -> Image.Image:
    """
    Apply a transparent->black gradient starting at y0 to the bottom.
    """
    w, h = img_rgba.size
    overlay = Image.new("RGBA", (w, h), (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)

    height = max(1, h - max(0, y0))
    for i in range(height):
        a = int((i / height) * max_alpha)
        y = max(0, y0) + i
        draw.line([(0, y), (w, y)], fill=(0, 0, 0, a))

    return Image.alpha_composite(img_rgba, overlay)


def _load_font(size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """
    Prefer a TTF font with CJK coverage, then any TTF. Falls back to Pillow's default font.
    """
    candidates: list[str] = [
        "assets/fonts/NotoSansJP-Bold.ttf",
        "/usr/share/fonts/opentype/noto/NotoSansCJK-Bold.ttc",
        "/usr/share/fonts/noto-cjk/NotoSansCJK-Bold.ttc",
        "/System/Library/Fonts/ヒラギノ角ゴシック W6.ttc",
        "C:\\Windows\\Fonts\\meiryob.ttc",
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/System/Library/Fonts/Supplemental/Arial.ttf",
        "/Library/Fonts/Arial.ttf",
    ]
    for c in candidates:
        if Path(c).exists():
            try:
                return ImageFont.truetype(c, size=size)
            except OSError:
                logger.debug("Could not load font %s", c)
    return ImageFont.load_default(size=size)


def _hex_to_rgb(hex_color: str) -> tuple[int, int, int]:
    s = (hex_color or "").strip().lstrip("#")
    if len(s) == 3:
        s = "".join([c * 2 for c in s])
    try:
        if len(s) == 6:
            return (int(s[0:2], 16), int(s[2:4], 16), int(s[4:6], 16))
    except ValueError:
        pass
    return (255, 255, 255)


def _scrim_fraction(size: tuple[int, int]) -> float:
    # Tall canvases need more room since copy blocks wrap into more lines.
    w, h = size
    if w == 0 or h == 0:
        return 0.35
    r = w / h
    if abs(r - (9 / 16)) < 0.02:
        return 0.40
    if abs(r - (4 / 5)) < 0.02:
        return 0.34
    return 0.35


def _fit_text_to_box(
    draw: ImageDraw.ImageDraw,
    text: str,
    box: tuple[int, int, int, int],
    max_font_px: int,
    min_font_px: int,
) -> tuple[ImageFont.ImageFont, str, int]:
    x1, y1, x2, y2 = box
    max_w = max(1, x2 - x1)
    max_h = max(1, y2 - y1)

    max_font_px = max(min_font_px, max_font_px)

    for px in range(max_font_px, min_font_px - 1, -2):
        font = _load_font(px)
        spacing = max(2, int(px * 0.18))
        wrapped = _wrap_to_width(draw, text, font, max_w)
        bbox = draw.multiline_textbbox((0, 0), wrapped, font=font, spacing=spacing)
        if bbox[2] - bbox[0] <= max_w and bbox[3] - bbox[1] <= max_h:
            return font, wrapped, spacing

    font = _load_font(min_font_px)
    spacing = max(2, int(min_font_px * 0.18))
    return font, _wrap_to_width(draw, text, font, max_w), spacing


def _text_width(draw: ImageDraw.ImageDraw, text: str, font) -> int:
    bbox = draw.textbbox((0, 0), text, font=font)
    return bbox[2] - bbox[0]


def _wrap_to_width(draw: ImageDraw.ImageDraw, text: str, font, max_w: int) -> str:
    """Word wrap that keeps explicit line breaks and splits unspaced (CJK) runs by character."""
    lines: list[str] = []
    for paragraph in (text or "").splitlines():
        words = [w for w in paragraph.split() if w]
        if not words:
            continue
        cur = ""
        for word in words:
            trial = f"{cur} {word}" if cur else word
            if _text_width(draw, trial, font) <= max_w:
                cur = trial
                continue
            if cur:
                lines.append(cur)
            cur = ""
            for ch in word:
                if cur and _text_width(draw, cur + ch, font) > max_w:
                    lines.append(cur)
                    cur = ch
                else:
                    cur += ch
        if cur:
            lines.append(cur)
    return "\n".join(lines)
