"""Form body parsing: URL-encoded and multipart.

URL-encoded bodies use stdlib ``urllib.parse``; multipart bodies are
parsed with ``python-multipart``.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qs

from python_multipart.multipart import MultipartParser, parse_options_header


@dataclass(frozen=True, slots=True)
class UploadFile:
    """An uploaded file from a multipart form submission, held in memory."""

    filename: str
    content_type: str
    size: int
    _content: bytes

    async def read(self) -> bytes:
        return self._content

    def __repr__(self) -> str:
        return f"UploadFile({self.filename!r}, {self.content_type!r}, {self.size} bytes)"


class FormData(Mapping[str, str]):
    """Immutable parsed form data.

    String fields are exposed through the mapping interface; uploads
    through ``files``::

        form = await request.form()
        doc_type = form.get("docType")
        upload = form.files.get("file")  # UploadFile or None
    """

    __slots__ = ("_data", "_files")

    def __init__(
        self,
        data: dict[str, list[str]],
        files: dict[str, UploadFile] | None = None,
    ) -> None:
        object.__setattr__(self, "_data", data)
        object.__setattr__(self, "_files", files or {})

    @property
    def files(self) -> Mapping[str, UploadFile]:
        return self._files

    def __getitem__(self, key: str) -> str:
        return self._data[key][0]

    def __contains__(self, key: object) -> bool:
        return key in self._data or key in self._files

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {self[k]!r}" for k in self)
        return f"FormData({{{items}}}, files={sorted(self._files)!r})"

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        values = self._data.get(key)
        if values:
            return values[0]
        return default

    def get_list(self, key: str) -> list[str]:
        return list(self._data.get(key, []))


async def parse_form_data(body: bytes, content_type: str) -> FormData:
    """Parse a form body according to its Content-Type.

    Raises:
        ValueError: The content type is not a form encoding, or a
            multipart body has no boundary.
    """
    media_type = content_type.lower().split(";")[0].strip()

    if media_type == "application/x-www-form-urlencoded":
        return FormData(parse_qs(body.decode("utf-8"), keep_blank_values=True))

    if media_type == "multipart/form-data":
        return _parse_multipart(body, content_type)

    msg = f"Unsupported form content type: {content_type!r}"
    raise ValueError(msg)


def _parse_multipart(body: bytes, content_type: str) -> FormData:
    _, options = parse_options_header(content_type.encode("latin-1"))
    boundary = options.get(b"boundary")
    if boundary is None:
        msg = "Multipart form data missing boundary parameter"
        raise ValueError(msg)

    data: dict[str, list[str]] = {}
    files: dict[str, UploadFile] = {}

    part_headers: dict[str, str] = {}
    part_data = bytearray()
    pending_header = ""
    field_name: str | None = None
    filename: str | None = None

    def on_part_begin() -> None:
        nonlocal part_headers, part_data, field_name, filename
        part_headers = {}
        part_data = bytearray()
        field_name = None
        filename = None

    def on_part_data(chunk: bytes, start: int, end: int) -> None:
        part_data.extend(chunk[start:end])

    def on_part_end() -> None:
        if field_name is None:
            return
        if filename is not None:
            content = bytes(part_data)
            files[field_name] = UploadFile(
                filename=filename,
                content_type=part_headers.get("content-type", "application/octet-stream"),
                size=len(content),
                _content=content,
            )
        else:
            data.setdefault(field_name, []).append(part_data.decode("utf-8", errors="replace"))

    def on_header_field(chunk: bytes, start: int, end: int) -> None:
        nonlocal pending_header
        pending_header = chunk[start:end].decode("latin-1").lower()

    def on_header_value(chunk: bytes, start: int, end: int) -> None:
        nonlocal field_name, filename
        value = chunk[start:end].decode("latin-1")
        part_headers[pending_header] = value
        if pending_header == "content-disposition":
            _, params = parse_options_header(value.encode("latin-1"))
            if (name := params.get(b"name")) is not None:
                field_name = name.decode("utf-8")
            if (fname := params.get(b"filename")) is not None:
                filename = fname.decode("utf-8")

    callbacks: dict[str, Any] = {
        "on_part_begin": on_part_begin,
        "on_part_data": on_part_data,
        "on_part_end": on_part_end,
        "on_header_field": on_header_field,
        "on_header_value": on_header_value,
    }

    parser = MultipartParser(boundary, callbacks)
    parser.write(body)
    parser.finalize()

    return FormData(data, files)
