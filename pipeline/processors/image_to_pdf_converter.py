import io
import logging
from typing import Iterable

from PIL import Image, ImageSequence

from pipeline.processors.rasterizer import prepare_frame

logger = logging.getLogger(__name__)

PDF_RESOLUTION = 300.0


def _read_frames(data: bytes) -> list[Image.Image]:
    with Image.open(io.BytesIO(data)) as image:
        return [prepare_frame(frame.copy()) for frame in ImageSequence.Iterator(image)]


def images_to_pdf_bytes(images: Iterable[bytes]) -> bytes:
    """Combine every frame of every image into one PDF, one frame per page.

    Raises:
        ValueError: If no frame could be read from any input
    """
    frames: list[Image.Image] = []
    for data in images:
        frames.extend(_read_frames(data))

    if not frames:
        raise ValueError("No image frames to convert")

    buffer = io.BytesIO()
    try:
        frames[0].save(
            buffer,
            format="PDF",
            resolution=PDF_RESOLUTION,
            save_all=True,
            append_images=frames[1:],
        )
    finally:
        for frame in frames:
            frame.close()
    return buffer.getvalue()
