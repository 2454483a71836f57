# -*- coding: utf-8 -*-
import logging
import math
import os
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple

from PIL import Image, PngImagePlugin, UnidentifiedImageError
import piexif

from .settings import (
    CompositingQuality,
    EncoderParameter,
    InterpolationMode,
    PixelOffsetMode,
    Settings,
    SmoothingMode,
)

logger = logging.getLogger(__name__)

RESIZED = "resized"
SKIPPED_EXISTING = "skipped_existing"
SKIPPED_EXTENSION = "skipped_extension"
FAILED = "failed"

try:
    _RESAMPLING = Image.Resampling
except AttributeError:
    _RESAMPLING = Image

_INTERPOLATION_FILTERS = {
    InterpolationMode.Default: _RESAMPLING.BILINEAR,
    InterpolationMode.Low: _RESAMPLING.BILINEAR,
    InterpolationMode.Bilinear: _RESAMPLING.BILINEAR,
    InterpolationMode.HighQualityBilinear: _RESAMPLING.BILINEAR,
    InterpolationMode.Bicubic: _RESAMPLING.BICUBIC,
    InterpolationMode.High: _RESAMPLING.LANCZOS,
    InterpolationMode.HighQualityBicubic: _RESAMPLING.LANCZOS,
    InterpolationMode.NearestNeighbor: _RESAMPLING.NEAREST,
}
_FAST_SMOOTHING = {SmoothingMode.Default, SmoothingMode.HighSpeed, SmoothingMode["None"]}
_HALF_PIXEL_OFFSETS = {PixelOffsetMode.HighQuality, PixelOffsetMode.Half}
_PREMULTIPLIED_COMPOSITING = {CompositingQuality.HighQuality, CompositingQuality.GammaCorrected}
_STRAIGHT_ALPHA_MODES = ("RGBA", "LA")

# Image.info entries Pillow encoders accept back as save keywords.
METADATA_KEYS = ("exif", "icc_profile", "dpi", "xmp", "comment")

# TIFF compression values as written in the configuration file.
_TIFF_COMPRESSION = {2: "tiff_lzw", 3: "group3", 4: "group4", 5: "packbits", 6: "raw"}
_SCAN_METHOD_INTERLACED = 7
_COLOR_DEPTH_MODES = {1: "1", 8: "P", 24: "RGB", 32: "RGBA"}


@dataclass(frozen=True)
class ResampleOptions:
    resample: Any
    reducing_gap: Optional[float]
    half_pixel_offset: bool
    premultiply_alpha: bool


@dataclass(frozen=True)
class ResizeResult:
    status: str
    source: str
    target: Optional[str] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != FAILED


# --- Target path and size ---
def target_path_for(source_path: str, settings: Settings) -> str:
    """
    Output location for `source_path`: the configured output folder below the
    source directory (or the source directory itself when the folder name is
    blank), with the suffix inserted before the extension. The extension is the
    source's own unless a codec is selected.
    """
    source_dir = os.path.dirname(os.path.abspath(source_path))
    base_name, original_ext = os.path.splitext(os.path.basename(source_path))
    if settings.output_folder_name.strip():
        output_dir = os.path.join(source_dir, settings.output_folder_name)
    else:
        output_dir = source_dir
    output_ext = original_ext if settings.codec is None else f".{settings.codec.extension}"
    return os.path.join(output_dir, f"{base_name}{settings.output_file_suffix}{output_ext}")


def ensure_directory(path: str):
    # exist_ok tolerates other workers creating the same folder concurrently
    os.makedirs(path, exist_ok=True)


def compute_target_size(width: int, height: int, settings: Settings) -> Tuple[int, int]:
    if settings.keep_aspect_ratio:
        return math.floor(width * settings.ratio), math.floor(height * settings.ratio)
    return settings.fixed_width, settings.fixed_height


def extension_of(path: str) -> str:
    return os.path.splitext(path)[1].lower().lstrip(".")


# --- Resampling ---
def resample_options(settings: Settings) -> ResampleOptions:
    """Translates the four drawing quality knobs into Pillow resize arguments."""
    invalid = [
        mode for mode in (settings.compositing_quality, settings.interpolation_mode, settings.pixel_offset_mode, settings.smoothing_mode)
        if mode.name == "Invalid"
    ]
    if invalid:
        raise ValueError(f"Invalid drawing mode: {', '.join(type(m).__name__ for m in invalid)}")
    return ResampleOptions(
        resample=_INTERPOLATION_FILTERS[settings.interpolation_mode],
        reducing_gap=2.0 if settings.smoothing_mode in _FAST_SMOOTHING else None,
        half_pixel_offset=settings.pixel_offset_mode in _HALF_PIXEL_OFFSETS,
        premultiply_alpha=settings.compositing_quality in _PREMULTIPLIED_COMPOSITING,
    )


def resize_image(img: Image.Image, size: Tuple[int, int], options: ResampleOptions) -> Image.Image:
    work = img
    if work.mode == "P":
        work = work.convert("RGBA" if "transparency" in work.info else "RGB")

    try:
        # Without half-pixel offset, pixel centres sit on integer coordinates, which
        # shifts the sampled area by half a source pixel.
        box = None if options.half_pixel_offset else (0.5, 0.5, work.width, work.height)

        logger.debug(f"Resizing ({img.width},{img.height}) -> {size} with {options}")
        if work.mode in _STRAIGHT_ALPHA_MODES and not options.premultiply_alpha:
            # Straight alpha: colour and alpha bands are resampled independently
            bands = work.split()
            resized_bands = []
            try:
                for band in bands:
                    resized_bands.append(band.resize(size, options.resample, box=box, reducing_gap=options.reducing_gap))
                return Image.merge(work.mode, resized_bands)
            finally:
                for band in bands + tuple(resized_bands):
                    band.close()
        # Pillow premultiplies RGBA/LA by itself
        return work.resize(size, options.resample, box=box, reducing_gap=options.reducing_gap)
    finally:
        if work is not img:
            work.close()


# --- Metadata ---
def collect_metadata(img: Image.Image, source_name: str = "") -> Dict[str, Any]:
    """
    Gathers the source's metadata as save keywords, copied verbatim.
    EXIF is parsed with piexif only to report what is being carried over.
    """
    metadata = {key: img.info[key] for key in METADATA_KEYS if img.info.get(key)}
    # Palette index or colour key, 0 is a valid value
    if img.info.get("transparency") is not None:
        metadata["transparency"] = img.info["transparency"]

    exif = metadata.get("exif")
    if exif:
        try:
            exif_data = piexif.load(exif)
            count = sum(len(tags) for tags in exif_data.values() if isinstance(tags, dict))
            logger.debug(f"Copying {count} EXIF tag(s) from '{source_name}'.")
        except Exception as e:
            logger.debug(f"EXIF of '{source_name}' could not be parsed ({type(e).__name__}). Copying raw bytes.")

    text = getattr(img, "text", None)
    if text:
        pnginfo = PngImagePlugin.PngInfo()
        for key, value in text.items():
            pnginfo.add_text(key, value)
        metadata["pnginfo"] = pnginfo
    return metadata


# --- Encoding ---
def build_save_options(format_name: str, parameters: Iterable[EncoderParameter]) -> Tuple[Dict[str, Any], Optional[str]]:
    """
    Turns configured encoder parameters into Pillow save keywords for `format_name`,
    applied in order so a later parameter overrides an earlier one.
    Returns the keywords and the image mode requested through ColorDepth, if any.
    """
    save_kwargs: Dict[str, Any] = {}
    mode = None
    for parameter in parameters:
        key, value = parameter.key, parameter.value
        if key == "compression":
            if format_name == "TIFF" and value in _TIFF_COMPRESSION:
                save_kwargs["compression"] = _TIFF_COMPRESSION[value]
            elif format_name == "PNG":
                save_kwargs["compress_level"] = value
            else:
                logger.debug(f"Compression value {value} not applicable to {format_name}, ignored.")
        elif key == "scan_method":
            save_kwargs["progressive"] = value == _SCAN_METHOD_INTERLACED
        elif key == "color_depth":
            mode = _COLOR_DEPTH_MODES.get(value)
            if mode is None:
                logger.debug(f"Color depth {value} not supported, ignored.")
        elif key in ("optimize", "progressive", "lossless"):
            save_kwargs[key] = bool(value)
        else:
            save_kwargs[key] = value
    return save_kwargs, mode


def prepare_image_for_save(img: Image.Image, format_name: str, mode: Optional[str] = None) -> Image.Image:
    """Converts the image into a mode the target encoder can write."""
    save_img = img
    if mode and save_img.mode != mode:
        save_img = save_img.convert(mode)

    if format_name == "JPEG" and save_img.mode not in ("RGB", "L", "CMYK"):
        if save_img.mode == "P":
            save_img = save_img.convert("RGBA" if "transparency" in save_img.info else "RGB")
        if save_img.mode in ("RGBA", "LA"):
            # Flatten onto white, JPEG has no alpha channel
            background = Image.new("RGB", save_img.size, (255, 255, 255))
            background.paste(save_img, (0, 0), mask=save_img.split()[-1])
            save_img = background
        elif save_img.mode != "RGB":
            save_img = save_img.convert("RGB")

    if save_img.mode != img.mode:
        logger.debug(f"Image mode converted: '{img.mode}' -> '{save_img.mode}' for {format_name} output.")
    return save_img


def _remove_partial_output(target_path: str, source_path: str):
    if os.path.exists(target_path) and target_path != source_path:
        try:
            os.remove(target_path)
            logger.warning(f"Removed partially written output file: '{target_path}'")
        except OSError as e:
            logger.error(f"Could not remove partially written output file '{target_path}': {e}")


def process_file(source_path: str, settings: Settings, supported_extensions: FrozenSet[str]) -> ResizeResult:
    """
    Resizes a single file and writes the result next to it (see `target_path_for`).

    Skips the file when its output already exists and skipping is enabled, or when
    its extension is not one an encoder claims. Any failure is reported in the
    returned result instead of being raised.
    """
    target_path = None
    resized = None
    try:
        target_path = target_path_for(source_path, settings)
        ensure_directory(os.path.dirname(target_path))

        if settings.skip_if_exists and os.path.exists(target_path):
            logger.debug(f"Skipping '{source_path}': output '{target_path}' already exists.")
            return ResizeResult(SKIPPED_EXISTING, source_path, target_path)

        if extension_of(source_path) not in supported_extensions:
            logger.debug(f"Skipping '{source_path}': extension '{extension_of(source_path)}' is not supported.")
            return ResizeResult(SKIPPED_EXTENSION, source_path, target_path)

        with Image.open(source_path) as img:
            img.load()
            source_format = img.format
            source_mode = img.mode
            logger.debug(f"Image loaded: '{source_path}' (Size: {img.size}, Mode: {img.mode}, Format: {source_format})")

            target_size = compute_target_size(img.width, img.height, settings)
            resized = resize_image(img, target_size, resample_options(settings))

            save_kwargs = collect_metadata(img, source_path) if settings.copy_metadata else {}

        if settings.codec is None:
            format_name, mode = source_format, None
        else:
            format_name = settings.codec.format
            encoder_kwargs, mode = build_save_options(format_name, settings.encoder_parameters)
            save_kwargs.update(encoder_kwargs)

        save_img = prepare_image_for_save(resized, format_name, mode)
        if "transparency" in save_kwargs and (save_img.mode != source_mode or format_name != source_format):
            # The colour key only applies to the source pixel layout and encoder
            del save_kwargs["transparency"]
        try:
            save_img.save(target_path, format=format_name, **save_kwargs)
        finally:
            if save_img is not resized:
                save_img.close()
        logger.debug(f"Image saved: '{target_path}' ({format_name}, {target_size[0]}x{target_size[1]})")
        return ResizeResult(RESIZED, source_path, target_path)

    except UnidentifiedImageError:
        msg = "Invalid or corrupted image file. Pillow could not identify the image format."
        logger.error(f"Processing failed for '{source_path}': {msg}")
        return ResizeResult(FAILED, source_path, target_path, msg)
    except PermissionError:
        msg = "File read/write permission denied."
        logger.error(f"Processing failed for '{source_path}': {msg}")
        return ResizeResult(FAILED, source_path, target_path, msg)
    except OSError as e:
        msg = f"File system or OS-level error occurred ({e})."
        logger.error(f"Processing failed for '{source_path}': {msg}")
        if target_path and resized is not None:
            _remove_partial_output(target_path, source_path)
        return ResizeResult(FAILED, source_path, target_path, msg)
    except ValueError as e:
        msg = f"Image processing value error, likely from Pillow ({e})."
        logger.error(f"Processing failed for '{source_path}': {msg}")
        return ResizeResult(FAILED, source_path, target_path, msg)
    except Exception as e:
        msg = f"An unexpected error occurred ({type(e).__name__}: {e})."
        logger.critical(f"Processing failed for '{source_path}': {msg}", exc_info=True)
        return ResizeResult(FAILED, source_path, target_path, msg)
    finally:
        if resized is not None:
            resized.close()
