# retouch/infrastructure/imaging/codec.py
import io
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from ...exceptions import EncodeFailure, RetouchError
from ..tools.process import ToolRunner, scratch_dir, scratch_file
from .quality import QualityMatch, estimate_jpeg_quality, match_quality

logger = logging.getLogger(__name__)

HEIF_BRANDS = {b"heic", b"heix", b"hevc", b"hevx", b"heim", b"heis", b"mif1", b"msf1"}

PIL_FORMATS = {"jpeg": "JPEG", "jpg": "JPEG", "png": "PNG", "webp": "WEBP", "tiff": "TIFF"}


@dataclass
class ImageInfo:
    width: int
    height: int
    format: str
    file_size: int
    quality: Optional[int] = None
    color_space: Optional[str] = None
    bit_depth: Optional[int] = None


def is_heif(data: bytes, filename: Optional[str] = None) -> bool:
    if filename and filename.lower().endswith((".heic", ".heif")):
        return True
    return len(data) >= 12 and data[4:8] == b"ftyp" and data[8:12] in HEIF_BRANDS


def _bit_depth(mode: str) -> int:
    if mode in ("I;16", "I;16B", "I;16L", "I"):
        return 16
    if mode == "1":
        return 1
    return 8


def _prepare(image: Image.Image, pil_format: str) -> Image.Image:
    if pil_format == "JPEG" and image.mode not in ("RGB", "L", "CMYK"):
        if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
            background = Image.new("RGB", image.size, (255, 255, 255))
            rgba = image.convert("RGBA")
            background.paste(rgba, mask=rgba.split()[-1])
            return background
        return image.convert("RGB")
    if image.mode not in ("RGB", "RGBA", "L", "LA", "P", "I;16", "CMYK"):
        return image.convert("RGBA")
    return image


class RasterCodec:
    """Pillow for the formats it writes; ImageMagick for HEIC/HEIF containers."""

    def __init__(
        self,
        runner: ToolRunner,
        magick: str = "magick",
        thumbnail_size: Tuple[int, int] = (300, 300),
        thumbnail_quality: int = 80,
    ) -> None:
        self.runner = runner
        self.magick = magick
        self.thumbnail_size = tuple(thumbnail_size)
        self.thumbnail_quality = thumbnail_quality

    # --- inspection ---
    def probe(self, data: bytes, filename: Optional[str] = None) -> ImageInfo:
        if is_heif(data, filename):
            return self._probe_heif(data)
        try:
            with Image.open(io.BytesIO(data)) as img:
                fmt = (img.format or "").lower()
                quality = None
                if fmt == "jpeg":
                    quality = estimate_jpeg_quality(getattr(img, "quantization", None) or {})
                return ImageInfo(
                    width=img.width,
                    height=img.height,
                    format="jpeg" if fmt == "mpo" else fmt,
                    file_size=len(data),
                    quality=quality,
                    color_space=img.mode,
                    bit_depth=_bit_depth(img.mode),
                )
        except (UnidentifiedImageError, OSError) as e:
            raise EncodeFailure(f"Unsupported or corrupt image: {e}") from e

    def _probe_heif(self, data: bytes) -> ImageInfo:
        with scratch_dir() as tmp:
            src = scratch_file(tmp, ".heic")
            src.write_bytes(data)
            out = self.runner.run([
                self.magick, "identify", "-format", "%w %h %Q %[colorspace] %z\n", f"{src}[0]",
            ])
        fields = out.decode("utf-8", "replace").splitlines()[0].split()
        try:
            width, height = int(fields[0]), int(fields[1])
        except (IndexError, ValueError) as e:
            raise EncodeFailure(f"Could not read HEIC dimensions: {out!r}") from e
        quality = int(fields[2]) if len(fields) > 2 and fields[2].isdigit() and int(fields[2]) > 0 else None
        return ImageInfo(
            width=width,
            height=height,
            format="heic",
            file_size=len(data),
            quality=quality,
            color_space=fields[3] if len(fields) > 3 else None,
            bit_depth=int(fields[4]) if len(fields) > 4 and fields[4].isdigit() else None,
        )

    # --- decode / encode ---
    def decode(self, data: bytes, filename: Optional[str] = None) -> Image.Image:
        if is_heif(data, filename):
            data = self._heif_to_png(data)
        try:
            img = Image.open(io.BytesIO(data))
            img.load()
            return img
        except (UnidentifiedImageError, OSError) as e:
            raise EncodeFailure(f"Could not decode image: {e}") from e

    def _heif_to_png(self, data: bytes) -> bytes:
        with scratch_dir() as tmp:
            src = scratch_file(tmp, ".heic")
            src.write_bytes(data)
            try:
                return self.runner.run([self.magick, f"{src}[0]", "png:-"])
            except RetouchError as e:
                raise EncodeFailure(f"HEIC decode failed: {e.message}") from e

    def encode(
        self,
        image: Image.Image,
        fmt: str,
        quality: int = 90,
        size: Optional[Tuple[int, int]] = None,
        exif: Optional[bytes] = None,
        icc_profile: Optional[bytes] = None,
    ) -> bytes:
        """Encode with Pillow; ``size`` forces exact output dimensions."""
        pil_format = PIL_FORMATS.get(fmt.lower())
        if pil_format is None:
            raise EncodeFailure(f"Unsupported output format: {fmt}")
        if size and tuple(size) != image.size:
            image = image.resize(tuple(size), Image.Resampling.LANCZOS)
        image = _prepare(image, pil_format)

        params = {}
        if pil_format in ("JPEG", "WEBP"):
            params["quality"] = int(quality)
        if pil_format == "JPEG":
            params["optimize"] = True
        if exif:
            params["exif"] = exif
        if icc_profile:
            params["icc_profile"] = icc_profile

        buf = io.BytesIO()
        try:
            image.save(buf, format=pil_format, **params)
        except (OSError, ValueError) as e:
            raise EncodeFailure(f"{pil_format} encode failed: {e}") from e
        return buf.getvalue()

    def encode_heic(self, png_bytes: bytes, width: int, height: int, quality: int) -> bytes:
        with scratch_dir() as tmp:
            src = scratch_file(tmp, ".png")
            dst = scratch_file(tmp, ".heic")
            src.write_bytes(png_bytes)
            try:
                self.runner.run([
                    self.magick, str(src),
                    "-resize", f"{int(width)}x{int(height)}!",
                    "-quality", str(int(quality)),
                    str(dst),
                ])
            except RetouchError as e:
                raise EncodeFailure(f"HEIC encode failed: {e.message}") from e
            if not dst.exists() or dst.stat().st_size == 0:
                raise EncodeFailure("HEIC encode produced no output")
            return dst.read_bytes()

    def match_heic_quality(
        self,
        png_bytes: bytes,
        width: int,
        height: int,
        quality: int,
        desired_size: Optional[int],
        tolerance: float = 0.10,
        max_attempts: int = 6,
    ) -> QualityMatch:
        return match_quality(
            lambda q: self.encode_heic(png_bytes, width, height, q),
            start_quality=quality,
            desired_size=desired_size,
            tolerance=tolerance,
            max_attempts=max_attempts,
        )

    def to_png(self, data: bytes, filename: Optional[str] = None) -> bytes:
        """Lossless intermediate used for edit versions and HEIC re-encodes."""
        if is_heif(data, filename):
            return self._heif_to_png(data)
        image = ImageOps.exif_transpose(self.decode(data, filename))
        return self.encode(image, "png")

    # --- derived renditions ---
    def generate_thumbnail(self, data: bytes, filename: Optional[str] = None) -> Optional[bytes]:
        try:
            image = ImageOps.exif_transpose(self.decode(data, filename))
            thumb = ImageOps.fit(image.convert("RGB"), self.thumbnail_size, Image.Resampling.LANCZOS)
            return self.encode(thumb, "jpeg", quality=self.thumbnail_quality)
        except RetouchError as e:
            logger.warning(f"Thumbnail generation failed for {filename or 'image'}: {e.message}")
            return None

    def convert(self, data: bytes, target: str, quality: int = 90, preserve_metadata: bool = True,
                filename: Optional[str] = None) -> bytes:
        image = self.decode(data, filename)
        exif = icc = None
        if preserve_metadata:
            exif = image.info.get("exif")
            icc = image.info.get("icc_profile")
        else:
            image = ImageOps.exif_transpose(image)
        return self.encode(image, target, quality=quality, exif=exif, icc_profile=icc)
