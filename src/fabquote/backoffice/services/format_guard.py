"""
CAD format classification and conversion gating.
"""

import enum
import logging
import re
from typing import Callable, Optional
from urllib.parse import urlparse

from fabquote.config import get_settings
from fabquote.exceptions.handlers import FileTooLargeError

logger = logging.getLogger(__name__)

BREP_EXTENSIONS = {"step", "stp", "iges", "igs", "brep", "brp", "sldprt", "x_t", "x_b"}
MESH_EXTENSIONS = {"stl", "obj", "gltf", "glb", "3mf", "ply"}
OUTPUT_FORMATS = ("glb", "gltf", "obj", "stl")

MESH_CONTENT_TYPES = {
    "glb": "model/gltf-binary",
    "gltf": "model/gltf+json",
    "obj": "model/obj",
    "stl": "model/stl",
}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class CadFormat(str, enum.Enum):
    BREP = "brep"
    MESH = "mesh"
    OTHER = "other"


def file_extension(filename: Optional[str]) -> str:
    """Lower-case extension of a file name, storage key or URL ('' when absent)."""
    if not filename:
        return ""
    path = urlparse(filename).path if "://" in filename else filename.split("?", 1)[0]
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def file_name(ref: Optional[str], default: str = "file") -> str:
    if not ref:
        return default
    path = urlparse(ref).path if "://" in ref else ref.split("?", 1)[0]
    return path.rstrip("/").rsplit("/", 1)[-1] or default


def classify(filename: Optional[str]) -> CadFormat:
    ext = file_extension(filename)
    if ext in BREP_EXTENSIONS:
        return CadFormat.BREP
    if ext in MESH_EXTENSIONS:
        return CadFormat.MESH
    return CadFormat.OTHER


def needs_conversion(fmt: CadFormat) -> bool:
    return fmt is CadFormat.BREP


def sanitize_filename(name: str) -> str:
    cleaned = _UNSAFE_CHARS.sub("", re.sub(r"\s+", "-", name.strip()))
    return cleaned or "file"


def mesh_content_type(filename: str) -> str:
    return MESH_CONTENT_TYPES.get(file_extension(filename), "application/octet-stream")


class FormatGuard:
    """
    Gatekeeper applied before a file is handed to the conversion service.

    `output_format_provider` is called on every recommended_output_format()
    call, so a runtime override is honoured by the next conversion attempt.
    """

    def __init__(
        self,
        *,
        max_file_size_bytes: Optional[int] = None,
        output_format_provider: Optional[Callable[[], str]] = None,
    ):
        self.max_file_size_bytes = (
            max_file_size_bytes or get_settings().CONVERSION_MAX_FILE_SIZE_BYTES
        )
        self._output_format_provider = output_format_provider

    classify = staticmethod(classify)
    needs_conversion = staticmethod(needs_conversion)

    def validate_size(self, byte_length: int) -> None:
        if byte_length > self.max_file_size_bytes:
            raise FileTooLargeError(byte_length, self.max_file_size_bytes)

    def recommended_output_format(self) -> str:
        if self._output_format_provider is None:
            fmt = get_settings().CONVERSION_OUTPUT_FORMAT
        else:
            fmt = self._output_format_provider()
        fmt = (fmt or "").strip().lower()
        if fmt not in OUTPUT_FORMATS:
            logger.warning("Unsupported mesh output format %r, using glb", fmt)
            return "glb"
        return fmt
