"""Image normalisation helpers."""

from __future__ import annotations

from io import BytesIO

from PIL import Image, UnidentifiedImageError

from rebus.errors import RenderError


class ImageNormalizer:
    """Re-encodes rendered images as PNG so stored files match their names."""

    def normalize(self, image_bytes: bytes) -> bytes:
        """Return PNG bytes for any image format Pillow can decode."""

        try:
            with Image.open(BytesIO(image_bytes)) as img:
                if img.format == "PNG":
                    return image_bytes
                converted = img.convert("RGBA" if "A" in img.getbands() else "RGB")
                buffer = BytesIO()
                converted.save(buffer, format="PNG")
        except (UnidentifiedImageError, OSError) as exc:
            raise RenderError("Rendered output is not a decodable image.") from exc
        return buffer.getvalue()
