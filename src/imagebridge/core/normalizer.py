"""Re-encode provider output into a predictable image.

Provider output arrives in whatever format, colour mode and size the model
chose. ``ImageNormalizer`` turns it into the caller's format and size:

- sRGB pixels (embedded ICC profiles are converted, CMYK/palette/16-bit
  modes are mapped to RGB or RGBA)
- no metadata (EXIF orientation is applied first, then dropped)
- exact target dimensions when requested (LANCZOS)
- JPEG alpha flattened over a background colour

Encoding settings are fixed, so normalizing a normalized PNG returns the same
bytes.
"""

import io
import logging

from PIL import Image, ImageCms, ImageColor, ImageOps, UnidentifiedImageError

from .errors import ConversionFailedError
from .images import FORMAT_MIME, BinaryImage

logger = logging.getLogger(__name__)

MAX_BYTES = 100_000_000
MAX_PIXELS = 64_000_000

JPEG_QUALITY = 92
WEBP_QUALITY = 90

_PIL_FORMATS = {"png": "PNG", "webp": "WEBP", "jpeg": "JPEG"}
_SRGB_PROFILE = ImageCms.createProfile("sRGB")


class ImageNormalizer:
    """Normalize image bytes to a target format and size.

    Args:
        jpeg_background: Colour used under transparent pixels for JPEG output
    """

    def __init__(self, jpeg_background: str = "#ffffff") -> None:
        try:
            self.jpeg_background = ImageColor.getrgb(jpeg_background)[:3]
        except ValueError:
            logger.warning(f"Invalid JPEG background {jpeg_background!r}, using white")
            self.jpeg_background = (255, 255, 255)

    def normalize(
        self,
        data: bytes,
        target_format: str,
        target_width: int | None = None,
        target_height: int | None = None,
    ) -> BinaryImage:
        """Decode, convert and re-encode image bytes.

        Args:
            data: Encoded input image
            target_format: ``png``, ``webp`` or ``jpeg`` (anything else becomes ``png``)
            target_width: Output width; resize only when both sizes are given
            target_height: Output height

        Returns:
            BinaryImage with the target format and the final pixel size

        Raises:
            ConversionFailedError: If the input is too large, cannot be
                decoded, or cannot be encoded
        """
        fmt = (target_format or "").lower()
        if fmt == "jpg":
            fmt = "jpeg"
        if fmt not in _PIL_FORMATS:
            fmt = "png"

        if not data:
            raise ConversionFailedError("Image data is empty", operation="normalize")
        if len(data) > MAX_BYTES:
            raise ConversionFailedError(
                f"Image is larger than {MAX_BYTES} bytes", operation="normalize"
            )

        try:
            with Image.open(io.BytesIO(data)) as source:
                width, height = source.size
                if width * height > MAX_PIXELS:
                    raise ConversionFailedError(
                        f"Image has more than {MAX_PIXELS} pixels ({width}x{height})",
                        operation="normalize",
                    )
                source.load()
                image = self._to_srgb(ImageOps.exif_transpose(source))
        except ConversionFailedError:
            raise
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            raise ConversionFailedError(f"Failed to decode image: {e}", operation="normalize") from e

        if target_width and target_height and image.size != (target_width, target_height):
            if target_width <= 0 or target_height <= 0:
                raise ConversionFailedError(
                    f"Invalid target size {target_width}x{target_height}", operation="normalize"
                )
            image = image.resize((target_width, target_height), Image.Resampling.LANCZOS)

        encoded = self._encode(image, fmt)
        return BinaryImage(
            data=encoded, mime=FORMAT_MIME[fmt], width=image.width, height=image.height
        )

    def _to_srgb(self, image: Image.Image) -> Image.Image:
        icc = image.info.get("icc_profile")
        if icc:
            try:
                source_profile = ImageCms.ImageCmsProfile(io.BytesIO(icc))
                output_mode = "RGBA" if image.mode in ("RGBA", "LA", "PA") else "RGB"
                if image.mode not in ("RGB", "RGBA"):
                    image = image.convert(output_mode)
                image = ImageCms.profileToProfile(
                    image, source_profile, _SRGB_PROFILE, outputMode=output_mode
                )
            except (ImageCms.PyCMSError, OSError) as e:
                logger.warning(f"Could not apply embedded colour profile: {e}")

        has_alpha = image.mode in ("RGBA", "LA", "PA") or (
            image.mode == "P" and "transparency" in image.info
        )
        converted = image.convert("RGBA" if has_alpha else "RGB")
        # Fresh image without info so no metadata survives.
        clean = Image.new(converted.mode, converted.size)
        clean.paste(converted)
        return clean

    def _encode(self, image: Image.Image, fmt: str) -> bytes:
        buffer = io.BytesIO()
        try:
            if fmt == "jpeg":
                if image.mode == "RGBA":
                    background = Image.new("RGB", image.size, self.jpeg_background)
                    background.paste(image, mask=image.getchannel("A"))
                    image = background
                image.save(buffer, format="JPEG", quality=JPEG_QUALITY, optimize=False)
            elif fmt == "webp":
                image.save(buffer, format="WEBP", quality=WEBP_QUALITY, method=4)
            else:
                image.save(buffer, format="PNG", optimize=False)
        except (OSError, ValueError, KeyError) as e:
            raise ConversionFailedError(f"Failed to encode {fmt}: {e}", operation="normalize") from e
        return buffer.getvalue()
