"""
=============================================================================
REQUEST PARAMETERS
=============================================================================

The OpenML REST API takes its arguments as an ORDERED list of
(name, value) pairs. A dict will not do: some endpoints depend on field
order, so the order given by the caller is the order put on the wire.

    params = [
        ("description|text/xml|description.xml", xml_text),
        ("dataset|text/plain|iris.arff", arff_text),
    ]
    conn.post("/data", params)

=============================================================================
FILE-FIELD MARKER
=============================================================================

A POST parameter becomes a file upload when its name contains "|":

    ┌──────────────────────────────┬────────┬────────────┬─────────────┐
    │  Name                        │ Field  │ MIME type  │ Filename    │
    ├──────────────────────────────┼────────┼────────────┼─────────────┤
    │  "f"                         │ f      │ -          │ -  (plain)  │
    │  "f|text/plain"              │ f      │ text/plain │ f           │
    │  "f|text/plain|x.txt"        │ f      │ text/plain │ x.txt       │
    │  "f|text/plain|"             │ ParameterError: empty filename   │
    │  "f|"  /  "f|plain"          │ ParameterError: bad MIME type    │
    └──────────────────────────────┴──────────────────────────────────┘

The value of a file field is the literal file content, not a path.

Internally the stringly-typed marker is parsed once into a tagged
variant, PlainField or FileField. Callers may put those objects into the
list directly instead of using the marker syntax; the wire encoding is
identical.

=============================================================================
ENCODINGS
=============================================================================

    url_encode()         name=value&name=value        (query string / form)
    encode_multipart()   multipart/form-data body     (file uploads)

Both preserve list order exactly.

=============================================================================
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union
from urllib.parse import quote
import uuid

from ..exceptions import ParameterError


FILE_MARKER = "|"

ParamValue = Union[str, bytes]


@dataclass(frozen=True)
class PlainField:
    """An ordinary form/query parameter."""

    name: str
    value: ParamValue

    @property
    def is_file(self) -> bool:
        return False


@dataclass(frozen=True)
class FileField:
    """A file upload: the value is the file content itself."""

    name: str
    value: ParamValue
    mime_type: str
    filename: str

    @property
    def is_file(self) -> bool:
        return True


Field = Union[PlainField, FileField]

# What callers hand to Connection.get/post/delete.
ParamList = Sequence[Union[Tuple[str, ParamValue], PlainField, FileField]]


# =============================================================================
# MARKER PARSING
# =============================================================================

def _check_token(kind: str, token: str, marker: str) -> None:
    if not token:
        raise ParameterError(f"Malformed file marker {marker!r}: empty {kind}")
    if any(c in token for c in ('"', "\r", "\n")):
        raise ParameterError(
            f"Malformed file marker {marker!r}: {kind} contains a quote or line break"
        )


def parse_field(name: str, value: ParamValue) -> Field:
    """
    Turn one (name, value) pair into a PlainField or FileField.

    The separator is matched literally; "field|mime" and
    "field|mime|filename" are the only accepted shapes.

    Raises:
        ParameterError: If the name carries a malformed file marker.
    """
    if not isinstance(name, str):
        raise ParameterError(f"Parameter name must be a string, got {type(name).__name__}")
    if not isinstance(value, (str, bytes)):
        raise ParameterError(
            f"Parameter {name!r} must have a str or bytes value, got {type(value).__name__}"
        )

    if FILE_MARKER not in name:
        return PlainField(name, value)

    parts = name.split(FILE_MARKER)
    if len(parts) > 3:
        raise ParameterError(f"Malformed file marker {name!r}: too many separators")

    field_name, mime_type = parts[0], parts[1]
    filename = parts[2] if len(parts) == 3 else field_name

    _check_token("field name", field_name, name)
    _check_token("MIME type", mime_type, name)
    _check_token("filename", filename, name)

    # type/subtype, both halves non-empty
    major, _, minor = mime_type.partition("/")
    if not major or not minor or any(c.isspace() for c in mime_type):
        raise ParameterError(f"Malformed file marker {name!r}: invalid MIME type {mime_type!r}")

    return FileField(field_name, value, mime_type, filename)


def parse_params(params: Optional[ParamList]) -> List[Field]:
    """
    Parse a whole parameter list, preserving order.

    Entries may be (name, value) tuples or ready-made PlainField/FileField
    objects.
    """
    fields: List[Field] = []
    for entry in params or ():
        if isinstance(entry, (PlainField, FileField)):
            fields.append(entry)
            continue
        try:
            name, value = entry
        except (TypeError, ValueError):
            raise ParameterError(f"Parameter must be a (name, value) pair, got {entry!r}")
        fields.append(parse_field(name, value))
    return fields


def has_files(fields: Sequence[Field]) -> bool:
    return any(f.is_file for f in fields)


# =============================================================================
# URL ENCODING
# =============================================================================

def _to_bytes(value: ParamValue) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def url_quote(text: ParamValue) -> str:
    """
    Percent-encode everything outside the unreserved set A-Z a-z 0-9 -_.~

    Spaces become %20, never "+".
    """
    return quote(_to_bytes(text), safe="")


def url_encode(fields: Sequence[Field]) -> str:
    """
    Encode fields as "a=1&b=2" in list order.

    Raises:
        ParameterError: If a file field is present; files only travel in
        multipart bodies.
    """
    pairs = []
    for f in fields:
        if f.is_file:
            raise ParameterError(
                f"File field {f.name!r} can only be sent in a POST request"
            )
        pairs.append(f"{url_quote(f.name)}={url_quote(f.value)}")
    return "&".join(pairs)


# =============================================================================
# MULTIPART ENCODING (RFC 7578)
# =============================================================================
#
#   --BOUNDARY\r\n
#   Content-Disposition: form-data; name="task_id"\r\n
#   \r\n
#   59\r\n
#   --BOUNDARY\r\n
#   Content-Disposition: form-data; name="predictions"; filename="p.arff"\r\n
#   Content-Type: text/plain\r\n
#   \r\n
#   @relation predictions ...\r\n
#   --BOUNDARY--\r\n
#
# =============================================================================

def make_boundary(fields: Sequence[Field]) -> str:
    """
    Generate a random boundary that occurs nowhere in the encoded parts.

    A collision with 32 random hex digits is practically impossible, but
    file content is arbitrary, so it is checked rather than assumed.
    """
    payloads = []
    for f in fields:
        payloads.append(_to_bytes(f.name))
        payloads.append(_to_bytes(f.value))
        if f.is_file:
            payloads.append(_to_bytes(f.filename))
            payloads.append(_to_bytes(f.mime_type))

    while True:
        boundary = f"----OpenMLFormBoundary{uuid.uuid4().hex}"
        token = boundary.encode("ascii")
        if not any(token in p for p in payloads):
            return boundary


def encode_multipart(
    fields: Sequence[Field],
    boundary: Optional[str] = None,
) -> Tuple[bytes, str]:
    """
    Encode fields as a multipart/form-data body.

    Args:
        fields: Parsed fields, in wire order.
        boundary: Fixed boundary (tests); generated when omitted.

    Returns:
        Tuple of (body bytes, Content-Type header value).
    """
    if boundary is None:
        boundary = make_boundary(fields)
    delimiter = f"--{boundary}\r\n".encode("ascii")

    chunks: List[bytes] = []
    for f in fields:
        # Fields may be built directly, bypassing parse_field
        _check_token("field name", f.name, f.name)
        if f.is_file:
            _check_token("MIME type", f.mime_type, f.name)
            _check_token("filename", f.filename, f.name)
        chunks.append(delimiter)
        if f.is_file:
            chunks.append(
                f'Content-Disposition: form-data; name="{f.name}"; '
                f'filename="{f.filename}"\r\n'
                f"Content-Type: {f.mime_type}\r\n".encode("utf-8")
            )
        else:
            chunks.append(
                f'Content-Disposition: form-data; name="{f.name}"\r\n'.encode("utf-8")
            )
        chunks.append(b"\r\n")
        chunks.append(_to_bytes(f.value))
        chunks.append(b"\r\n")
    chunks.append(f"--{boundary}--\r\n".encode("ascii"))

    return b"".join(chunks), f"multipart/form-data; boundary={boundary}"
