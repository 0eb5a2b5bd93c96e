"""Render highlighted regions on top of a scan preview."""

from __future__ import annotations

from collections.abc import Sequence
from io import BytesIO

from PIL import Image, ImageDraw, ImageFont

from .schema import Region, Severity

SEVERITY_COLORS: dict[Severity, tuple[int, int, int]] = {
    Severity.LOW: (234, 179, 8),
    Severity.MEDIUM: (249, 115, 22),
    Severity.HIGH: (220, 38, 38),
}


def region_box(region: Region, size: tuple[int, int]) -> tuple[int, int, int, int]:
    """Convert a percentage region into pixel coordinates clamped to ``size``."""
    width, height = size
    x_min = int(round(region.x / 100 * width))
    y_min = int(round(region.y / 100 * height))
    x_max = int(round(min(100.0, region.x + region.width) / 100 * width))
    y_max = int(round(min(100.0, region.y + region.height) / 100 * height))
    return (
        max(0, min(width - 1, x_min)),
        max(0, min(height - 1, y_min)),
        max(0, min(width - 1, x_max)),
        max(0, min(height - 1, y_max)),
    )


def draw_regions(
    image: Image.Image,
    regions: Sequence[Region],
    *,
    outline_width: int = 3,
    selected_id: str | None = None,
) -> Image.Image:
    """Return a copy of ``image`` with translucent, labelled region boxes."""
    canvas = image.convert("RGBA")
    overlay = Image.new("RGBA", canvas.size, (255, 255, 255, 0))
    draw = ImageDraw.Draw(overlay)
    font = ImageFont.load_default()

    for region in regions:
        box = region_box(region, canvas.size)
        red, green, blue = SEVERITY_COLORS.get(region.severity, SEVERITY_COLORS[Severity.MEDIUM])
        fill_alpha = 90 if region.id == selected_id else 40
        draw.rectangle(box, fill=(red, green, blue, fill_alpha))
        for offset in range(outline_width):
            draw.rectangle(
                (box[0] - offset, box[1] - offset, box[2] + offset, box[3] + offset),
                outline=(red, green, blue, 255),
            )

        label = region.location
        left, top, right, bottom = draw.textbbox((0, 0), label, font=font)
        text_w, text_h = right - left, bottom - top
        text_x = box[0]
        text_y = max(0, box[1] - text_h - 6)
        draw.rectangle(
            (text_x, text_y, text_x + text_w + 6, text_y + text_h + 4), fill=(0, 0, 0, 160)
        )
        draw.text((text_x + 3, text_y + 2), label, fill=(255, 255, 255, 255), font=font)

    return Image.alpha_composite(canvas, overlay).convert("RGB")


def render_overlay_png(
    image: Image.Image, regions: Sequence[Region], *, selected_id: str | None = None
) -> bytes:
    with BytesIO() as buffer:
        draw_regions(image, regions, selected_id=selected_id).save(buffer, format="PNG")
        return buffer.getvalue()
