from __future__ import annotations

import asyncio
import math
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from PIL import Image, ImageDraw, ImageFont, ImageOps, UnidentifiedImageError

from .config import AlbumConfig
from .utils import album_image_name

PAGE_BACKGROUND = (24, 24, 24)
FRAME_COLOR = (250, 250, 245)
CAPTION_COLOR = (34, 34, 34)
TITLE_COLOR = (235, 235, 235)


class AggregationError(RuntimeError):
    pass


class AlbumComposer:
    """Lays the era images out as polaroid frames on a single JPEG page."""

    def __init__(self, album_config: AlbumConfig, output_dir: Path) -> None:
        self.album_config = album_config
        self.output_dir = output_dir

    @property
    def output_path(self) -> Path:
        return self.output_dir / album_image_name()

    async def compose_page(self, images: Mapping[str, Any], expected_ids: Iterable[str]) -> Path:
        expected = set(expected_ids)
        missing = sorted(job_id for job_id in expected if images.get(job_id) is None)
        if missing:
            raise AggregationError(f"album is missing images for: {', '.join(missing)}")
        # frames follow the mapping's order
        ordered = [(job_id, Path(image)) for job_id, image in images.items() if job_id in expected]
        return await asyncio.to_thread(self._render, ordered)

    def _render(self, ordered: list[tuple[str, Path]]) -> Path:
        cell = self.album_config.cell_size
        columns = min(self.album_config.columns, max(len(ordered), 1))
        rows = max(math.ceil(len(ordered) / columns), 1)

        border = max(cell // 24, 4)
        caption_height = max(cell // 6, 24)
        gap = max(cell // 10, 8)
        title_height = max(cell // 4, 32)
        frame_width = cell + 2 * border
        frame_height = cell + border + caption_height

        page = Image.new(
            "RGB",
            (
                columns * frame_width + (columns + 1) * gap,
                title_height + rows * frame_height + (rows + 1) * gap,
            ),
            PAGE_BACKGROUND,
        )
        draw = ImageDraw.Draw(page)
        title_font = ImageFont.load_default(size=max(title_height // 2, 12))
        caption_font = ImageFont.load_default(size=max(caption_height // 2, 10))
        _draw_centered(draw, self.album_config.title, title_font, page.width // 2, title_height // 2 + gap // 2, TITLE_COLOR)

        for index, (job_id, image_path) in enumerate(ordered):
            row, column = divmod(index, columns)
            left = gap + column * (frame_width + gap)
            top = title_height + gap + row * (frame_height + gap)
            draw.rectangle((left, top, left + frame_width - 1, top + frame_height - 1), fill=FRAME_COLOR)
            photo = _load_square(image_path, cell, job_id)
            page.paste(photo, (left + border, top + border))
            _draw_centered(
                draw,
                job_id,
                caption_font,
                left + frame_width // 2,
                top + border + cell + caption_height // 2,
                CAPTION_COLOR,
            )

        self.output_dir.mkdir(parents=True, exist_ok=True)
        page.save(self.output_path, format="JPEG", quality=92)
        return self.output_path


def _load_square(path: Path, size: int, job_id: str) -> Image.Image:
    try:
        with Image.open(path) as source:
            return ImageOps.fit(source.convert("RGB"), (size, size))
    except (OSError, UnidentifiedImageError) as exc:
        raise AggregationError(f"cannot read image for {job_id}: {path}") from exc


def _draw_centered(
    draw: ImageDraw.ImageDraw,
    text: str,
    font: ImageFont.ImageFont | ImageFont.FreeTypeFont,
    center_x: int,
    center_y: int,
    fill: tuple[int, int, int],
) -> None:
    draw.text((center_x, center_y), text, font=font, fill=fill, anchor="mm")
