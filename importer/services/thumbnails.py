"""Thumbnail re-encoding: whatever the source serves becomes a JPEG."""
import asyncio
import io

from PIL import Image


def encode_thumbnail(content: bytes, max_width: int = 1080, quality: int = 80) -> bytes:
    """
    Re-encode image bytes as JPEG, downscaled to ``max_width``.

    Aspect ratio is preserved; smaller images are not enlarged.
    """
    with Image.open(io.BytesIO(content)) as img:
        img = img.convert("RGB")
        if img.width > max_width:
            height = max(1, round(img.height * max_width / img.width))
            img = img.resize((max_width, height), Image.Resampling.LANCZOS)
        out = io.BytesIO()
        img.save(out, format="JPEG", quality=quality)
        return out.getvalue()


async def encode_thumbnail_async(content: bytes, max_width: int = 1080, quality: int = 80) -> bytes:
    """Run encode_thumbnail in a worker thread to keep the event loop free."""
    return await asyncio.to_thread(encode_thumbnail, content, max_width, quality)
