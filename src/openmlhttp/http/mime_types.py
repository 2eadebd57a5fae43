"""
MIME types for file uploads.

OpenML accepts a handful of file formats; the upload marker needs the
MIME type spelled out ("dataset|text/plain|iris.arff"). get_mime_type()
fills it in from the file extension when the caller only has a path, as
the command-line client does.
"""

from pathlib import Path


DEFAULT_MIME_TYPE = "application/octet-stream"

MIME_TYPES = {
    # OpenML payloads
    ".arff": "text/plain",
    ".xml": "text/xml",
    ".json": "application/json",
    ".csv": "text/csv",
    ".txt": "text/plain",
    # Model and archive attachments
    ".pkl": "application/octet-stream",
    ".zip": "application/zip",
    ".gz": "application/gzip",
    ".parquet": "application/octet-stream",
}


def get_mime_type(filename: str) -> str:
    """
    Get the MIME type for a filename from its extension.

    Unknown extensions map to application/octet-stream.

    Examples:
        >>> get_mime_type("iris.arff")
        'text/plain'
        >>> get_mime_type("description.XML")
        'text/xml'
    """
    return MIME_TYPES.get(Path(filename).suffix.lower(), DEFAULT_MIME_TYPE)
