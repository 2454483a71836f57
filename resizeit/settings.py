# -*- coding: utf-8 -*-
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Tuple

from .codecs import CodecInfo, CodecRegistry

logger = logging.getLogger(__name__)

ROOT_ELEMENT = "Configuration"

_INT_PATTERN = re.compile(r"\s*[+-]?\d+\s*")
_FLOAT_PATTERN = re.compile(r"\s*[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?\s*")
_INT64_MIN, _INT64_MAX = -(2 ** 63), 2 ** 63 - 1

# --- Drawing quality knobs ---
# Member names are matched case-sensitively against the configuration text.
# "None" is a keyword, hence the functional API for the enums that carry it.
CompositingQuality = Enum(
    "CompositingQuality",
    [("Invalid", -1), ("Default", 0), ("HighSpeed", 1), ("HighQuality", 2), ("GammaCorrected", 3), ("AssumeLinear", 4)],
    module=__name__,
)
InterpolationMode = Enum(
    "InterpolationMode",
    [
        ("Invalid", -1), ("Default", 0), ("Low", 1), ("High", 2), ("Bilinear", 3), ("Bicubic", 4),
        ("NearestNeighbor", 5), ("HighQualityBilinear", 6), ("HighQualityBicubic", 7),
    ],
    module=__name__,
)
PixelOffsetMode = Enum(
    "PixelOffsetMode",
    [("Invalid", -1), ("Default", 0), ("HighSpeed", 1), ("HighQuality", 2), ("None", 3), ("Half", 4)],
    module=__name__,
)
SmoothingMode = Enum(
    "SmoothingMode",
    [
        ("Invalid", -1), ("Default", 0), ("HighSpeed", 1), ("HighQuality", 2), ("None", 3),
        ("AntiAlias", 4), ("AntiAlias8x4", 5), ("AntiAlias8x8", 6),
    ],
    module=__name__,
)


class MissingValueError(LookupError):
    """The node or attribute is absent or carries no text."""


@dataclass(frozen=True)
class EncoderParameter:
    name: str  # element name as written in the configuration file
    key: str  # identifier resolved through the codec registry
    value: int


@dataclass(frozen=True)
class Settings:
    """
    Immutable run configuration. Every field has a default, so a missing or
    partially broken configuration file still yields a complete object.
    """
    keep_aspect_ratio: bool = True
    ratio: float = 0.1
    fixed_width: int = 1024
    fixed_height: int = 768
    output_folder_name: str = "Resized"  # blank keeps outputs next to their sources
    output_file_suffix: str = ""
    skip_if_exists: bool = False
    copy_metadata: bool = True
    max_parallelism: int = -1  # -1 lets the pool size itself from the CPU count
    recursive_search: bool = False
    codec: Optional[CodecInfo] = None
    encoder_parameters: Tuple[EncoderParameter, ...] = field(default_factory=tuple)
    compositing_quality: Any = CompositingQuality.HighQuality
    interpolation_mode: Any = InterpolationMode.HighQualityBicubic
    pixel_offset_mode: Any = PixelOffsetMode.HighQuality
    smoothing_mode: Any = SmoothingMode.HighQuality


# --- Value parsers ---
def parse_bool(text: str) -> bool:
    value = text.strip().lower()
    if value == "true":
        return True
    if value == "false":
        return False
    raise ValueError(f"'{text}' is not a valid boolean")


def parse_int(text: str, minimum: int = _INT64_MIN, maximum: int = _INT64_MAX) -> int:
    if not _INT_PATTERN.fullmatch(text):
        raise ValueError(f"'{text}' is not a valid integer")
    value = int(text)
    if not minimum <= value <= maximum:
        raise OverflowError(f"{value} is out of range [{minimum}, {maximum}]")
    return value


def parse_float(text: str) -> float:
    if not _FLOAT_PATTERN.fullmatch(text):
        raise ValueError(f"'{text}' is not a valid number")
    return float(text)


def parse_enum(enum_type, text: str):
    return enum_type[text.strip()]


def parse_field(default, parser: Callable[[], Any], name: Optional[str] = None):
    """
    Runs `parser` and returns its result, or `default` when it raises for any reason.
    One bad field never prevents the remaining fields from loading.
    """
    try:
        return parser()
    except MissingValueError:
        return default
    except Exception as e:
        logger.debug(f"Configuration field '{name or 'unknown'}' could not be parsed ({type(e).__name__}: {e}). Using default: {default!r}")
        return default


# --- Node accessors ---
def _node_text(root: ET.Element, tag: str) -> str:
    node = root.find(tag)
    if node is None or not node.text:
        raise MissingValueError(tag)
    return node.text


def _attribute(root: ET.Element, tag: str, attribute: str) -> str:
    node = root.find(tag)
    if node is None:
        raise MissingValueError(tag)
    value = node.get(attribute)
    if not value:
        raise MissingValueError(f"{tag}/@{attribute}")
    return value


def _string_node(root: ET.Element, tag: str) -> str:
    node = root.find(tag)
    if node is None:
        raise MissingValueError(tag)
    return node.text or ""


def _parse_encoder_parameter(node: ET.Element, registry: CodecRegistry) -> Optional[EncoderParameter]:
    text = node.text
    if not text or not text.strip():
        logger.debug(f"Encoder parameter '{node.tag}' has no value, skipping.")
        return None
    key = registry.resolve_parameter_name(node.tag)
    if key is None:
        logger.debug(f"Encoder parameter '{node.tag}' is not recognized, skipping.")
        return None
    try:
        value = parse_int(text)
    except (ValueError, OverflowError) as e:
        logger.debug(f"Encoder parameter '{node.tag}' has an invalid value ({e}), skipping.")
        return None
    return EncoderParameter(name=node.tag, key=key, value=value)


def _parse_image_codec(root: ET.Element, registry: CodecRegistry) -> Tuple[Optional[CodecInfo], Tuple[EncoderParameter, ...]]:
    node = root.find("ImageCodec")
    if node is None:
        raise MissingValueError("ImageCodec")

    codec = None
    mime_type = node.get("MimeType")
    if mime_type:
        codec = registry.find_by_mime(mime_type)  # unknown MIME type discards the whole block

    parameters = []
    for child in node:
        parameter = _parse_encoder_parameter(child, registry)
        if parameter is not None:
            parameters.append(parameter)
    return codec, tuple(parameters)


def load_settings(path: str, registry: CodecRegistry) -> Settings:
    """
    Reads the XML configuration file at `path`.

    Returns all-default settings when the file is missing, unreadable or not a
    well-formed `<Configuration>` document. Otherwise each field is parsed on its
    own and falls back to its default when absent or invalid. Never raises.
    """
    defaults = Settings()
    try:
        root = ET.parse(path).getroot()
    except (OSError, ValueError, LookupError, ET.ParseError) as e:
        logger.debug(f"Configuration file '{path}' not loaded ({type(e).__name__}: {e}). Using defaults.")
        return defaults
    if root.tag != ROOT_ELEMENT:
        logger.debug(f"Configuration file '{path}' has root element '{root.tag}', expected '{ROOT_ELEMENT}'. Using defaults.")
        return defaults

    codec, encoder_parameters = parse_field(
        (defaults.codec, defaults.encoder_parameters), lambda: _parse_image_codec(root, registry), "ImageCodec"
    )

    settings = Settings(
        copy_metadata=parse_field(defaults.copy_metadata, lambda: parse_bool(_node_text(root, "CopyMetadata")), "CopyMetadata"),
        keep_aspect_ratio=parse_field(
            defaults.keep_aspect_ratio, lambda: parse_bool(_attribute(root, "Resize", "KeepAspectRatio")), "Resize/@KeepAspectRatio"
        ),
        ratio=parse_field(defaults.ratio, lambda: parse_float(_attribute(root, "Resize", "Ratio")), "Resize/@Ratio"),
        fixed_width=parse_field(
            defaults.fixed_width, lambda: parse_int(_attribute(root, "Resize", "FixedWidth"), -(2 ** 31), 2 ** 31 - 1), "Resize/@FixedWidth"
        ),
        fixed_height=parse_field(
            defaults.fixed_height, lambda: parse_int(_attribute(root, "Resize", "FixedHeight"), -(2 ** 31), 2 ** 31 - 1), "Resize/@FixedHeight"
        ),
        output_folder_name=parse_field(defaults.output_folder_name, lambda: _string_node(root, "OutputFolderName"), "OutputFolderName"),
        output_file_suffix=parse_field(defaults.output_file_suffix, lambda: _string_node(root, "OutputFileSuffix"), "OutputFileSuffix"),
        skip_if_exists=parse_field(
            defaults.skip_if_exists, lambda: parse_bool(_node_text(root, "SkipIfOutputAlreadyExists")), "SkipIfOutputAlreadyExists"
        ),
        max_parallelism=parse_field(
            defaults.max_parallelism, lambda: parse_int(_node_text(root, "MaxDegreeOfParallelism"), -(2 ** 31), 2 ** 31 - 1), "MaxDegreeOfParallelism"
        ),
        recursive_search=parse_field(
            defaults.recursive_search, lambda: parse_bool(_node_text(root, "RecursiveDirectorySearch")), "RecursiveDirectorySearch"
        ),
        codec=codec,
        encoder_parameters=encoder_parameters,
        compositing_quality=parse_field(
            defaults.compositing_quality, lambda: parse_enum(CompositingQuality, _node_text(root, "CompositingQuality")), "CompositingQuality"
        ),
        interpolation_mode=parse_field(
            defaults.interpolation_mode, lambda: parse_enum(InterpolationMode, _node_text(root, "InterpolationMode")), "InterpolationMode"
        ),
        pixel_offset_mode=parse_field(
            defaults.pixel_offset_mode, lambda: parse_enum(PixelOffsetMode, _node_text(root, "PixelOffsetMode")), "PixelOffsetMode"
        ),
        smoothing_mode=parse_field(
            defaults.smoothing_mode, lambda: parse_enum(SmoothingMode, _node_text(root, "SmoothingMode")), "SmoothingMode"
        ),
    )
    logger.debug(f"Configuration loaded from '{path}': {settings}")
    return settings
