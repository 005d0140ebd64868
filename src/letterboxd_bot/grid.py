"""Poster grid composition."""
import asyncio
import logging
from io import BytesIO

import httpx
from PIL import Image, ImageOps, UnidentifiedImageError

from .config import GRID_CELL_WIDTH, GRID_CELL_HEIGHT, GRID_GAP, HTTP_TIMEOUT, USER_AGENT

logger = logging.getLogger(__name__)


def grid_size(cols: int, rows: int, cell_size: tuple[int, int] = (GRID_CELL_WIDTH, GRID_CELL_HEIGHT),
              gap: int = GRID_GAP) -> tuple[int, int]:
    width, height = cell_size
    return cols * width + (cols - 1) * gap, rows * height + (rows - 1) * gap


def cell_origin(index: int, cols: int, cell_size: tuple[int, int] = (GRID_CELL_WIDTH, GRID_CELL_HEIGHT),
                gap: int = GRID_GAP) -> tuple[int, int]:
    """Top-left pixel of cell ``index`` in row-major order."""
    width, height = cell_size
    row, col = divmod(index, cols)
    return col * (width + gap), row * (height + gap)


def compose_poster_grid(
    images: list[Image.Image | None],
    cols: int,
    rows: int,
    cell_size: tuple[int, int] = (GRID_CELL_WIDTH, GRID_CELL_HEIGHT),
    gap: int = GRID_GAP,
) -> Image.Image:
    """
    Lay out up to ``cols * rows`` posters row-major on a transparent canvas.

    The canvas size depends only on ``cols``, ``rows`` and ``cell_size``;
    a None entry (no poster) leaves its cell transparent.
    """
    if cols < 1 or rows < 1:
        raise ValueError(f"Grid needs at least one row and column, got {cols}x{rows}")

    canvas = Image.new("RGBA", grid_size(cols, rows, cell_size, gap), (0, 0, 0, 0))
    for index, image in enumerate(images[: cols * rows]):
        if image is None:
            continue
        poster = ImageOps.fit(image.convert("RGBA"), cell_size)
        canvas.paste(poster, cell_origin(index, cols, cell_size, gap))
    return canvas


def to_png_bytes(image: Image.Image) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


async def _download_image(client: httpx.AsyncClient, url: str | None) -> Image.Image | None:
    if not url:
        return None
    try:
        resp = await client.get(url)
        resp.raise_for_status()
        return Image.open(BytesIO(resp.content)).convert("RGBA")
    except (httpx.HTTPError, UnidentifiedImageError, OSError) as exc:
        logger.warning(f"Poster download failed for {url}: {exc}")
        return None


async def download_posters(urls: list[str | None], client: httpx.AsyncClient | None = None) -> list[Image.Image | None]:
    """Fetch poster images concurrently, keeping input order; failures become None."""
    if client is not None:
        return list(await asyncio.gather(*(_download_image(client, url) for url in urls)))

    async with httpx.AsyncClient(headers={"User-Agent": USER_AGENT}, timeout=HTTP_TIMEOUT,
                                 follow_redirects=True) as own_client:
        return list(await asyncio.gather(*(_download_image(own_client, url) for url in urls)))


async def build_grid_png(
    poster_urls: list[str | None],
    cols: int,
    rows: int,
    client: httpx.AsyncClient | None = None,
    cell_size: tuple[int, int] = (GRID_CELL_WIDTH, GRID_CELL_HEIGHT),
) -> bytes:
    images = await download_posters(poster_urls[: cols * rows], client)
    return to_png_bytes(compose_poster_grid(images, cols, rows, cell_size))
