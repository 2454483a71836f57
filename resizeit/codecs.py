# -*- coding: utf-8 -*-
import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from PIL import Image

logger = logging.getLogger(__name__)

# Encoder parameter names accepted in the configuration file, mapped to the
# keyword Pillow understands (or to an identifier translated at save time).
ENCODER_PARAMETER_NAMES = {
    "Quality": "quality",
    "Compression": "compression",
    "ScanMethod": "scan_method",
    "ColorDepth": "color_depth",
    "Optimize": "optimize",
    "Progressive": "progressive",
    "Lossless": "lossless",
    "Method": "method",
    "CompressLevel": "compress_level",
    "Subsampling": "subsampling",
}

# Pillow registers '.jfif' before '.jpg'; output files should get the common one.
_PREFERRED_EXTENSIONS = {
    "JPEG": "jpg",
    "TIFF": "tif",
}


class UnknownCodecError(KeyError):
    """Raised when a MIME type has no registered encoder."""


@dataclass(frozen=True)
class CodecInfo:
    format: str  # Pillow format identifier, e.g. "JPEG"
    mime_type: str
    extensions: Tuple[str, ...]  # lowercase, no leading dot, preferred first

    @property
    def extension(self) -> str:
        return self.extensions[0]


def parse_extension_list(value: str) -> List[str]:
    """
    Normalizes an extension list such as "*.JPG;*.JPEG;*.JPE" into
    ["jpg", "jpeg", "jpe"]. Entries may be separated by semicolons or commas and
    may carry a wildcard and/or a leading dot. Duplicates are dropped, order is kept.
    """
    extensions = []
    for entry in value.replace(",", ";").split(";"):
        ext = entry.strip().lstrip("*").lstrip(".").lower()
        if ext and ext != "*" and ext not in extensions:
            extensions.append(ext)
    return extensions


class CodecRegistry:
    """
    Read-only lookup table of the available image encoders, keyed by MIME type.
    Built once before processing starts and handed to the loader and the workers.
    """

    def __init__(self, codecs: Iterable[CodecInfo], parameter_names: Optional[Dict[str, str]] = None):
        self._codecs: Dict[str, CodecInfo] = {}
        for codec in codecs:
            if codec.mime_type in self._codecs:
                logger.debug(f"MIME type '{codec.mime_type}' already served by {self._codecs[codec.mime_type].format}, ignoring {codec.format}.")
                continue
            self._codecs[codec.mime_type] = codec
        self._parameter_names = dict(ENCODER_PARAMETER_NAMES if parameter_names is None else parameter_names)

    @classmethod
    def from_pillow(cls) -> "CodecRegistry":
        """Enumerates every Pillow plugin that can both open and save and has a MIME type and extensions."""
        Image.init()
        extensions_by_format: Dict[str, List[str]] = {}
        for ext, fmt in Image.registered_extensions().items():
            extensions_by_format.setdefault(fmt, []).append(ext)

        codecs = []
        for fmt in Image.SAVE:
            if fmt not in Image.OPEN:
                continue
            mime_type = Image.MIME.get(fmt)
            registered = extensions_by_format.get(fmt)
            if not mime_type or not registered:
                continue
            extensions = parse_extension_list(";".join(f"*{ext}" for ext in registered))
            preferred = _PREFERRED_EXTENSIONS.get(fmt)
            if preferred in extensions:
                extensions.remove(preferred)
                extensions.insert(0, preferred)
            codecs.append(CodecInfo(format=fmt, mime_type=mime_type, extensions=tuple(extensions)))

        logger.debug(f"Codec registry loaded with {len(codecs)} encoders: {', '.join(c.mime_type for c in codecs)}")
        return cls(codecs)

    def list_encoders(self) -> Dict[str, CodecInfo]:
        return dict(self._codecs)

    def find_by_mime(self, mime_type: str) -> CodecInfo:
        try:
            return self._codecs[mime_type]
        except KeyError:
            raise UnknownCodecError(mime_type) from None

    def extensions_for(self, mime_type: str) -> List[str]:
        return list(self.find_by_mime(mime_type).extensions)

    def resolve_parameter_name(self, name: str) -> Optional[str]:
        return self._parameter_names.get(name)

    def supported_extensions(self) -> FrozenSet[str]:
        return frozenset(ext for codec in self._codecs.values() for ext in codec.extensions)
