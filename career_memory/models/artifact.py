"""Artifact — an external document, link or image offered as evidence."""

import base64
import binascii
import re
from typing import Union

from pydantic import BaseModel, field_validator


_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.S)


class Artifact(BaseModel):
    """Normalized (content, mime_type, display_label) triple."""

    content: Union[bytes, str]
    mime_type: str = "text/plain"
    display_label: str

    @field_validator("display_label")
    @classmethod
    def _label_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("display_label must be non-empty")
        return value

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    def text(self) -> str:
        """Textual content for the prompt; binary artifacts are described by label."""
        if isinstance(self.content, str):
            return self.content
        if self.is_image:
            return f"[image attached: {self.display_label}]"
        return self.content.decode("utf-8", errors="replace")

    @classmethod
    def from_text(cls, text: str, label: str = "") -> "Artifact":
        """A URL or pasted text; the text is its own label unless one is given."""
        return cls(content=text, mime_type="text/plain", display_label=label or text)

    @classmethod
    def from_upload(cls, data: bytes, mime_type: str, filename: str) -> "Artifact":
        return cls(content=data, mime_type=mime_type, display_label=filename)

    @classmethod
    def from_data_url(cls, data_url: str, filename: str) -> "Artifact":
        """Decode a base64 `data:` URL as produced by browser file readers."""
        match = _DATA_URL.match(data_url.strip())
        if not match:
            raise ValueError("not a base64 data URL")
        try:
            data = base64.b64decode(match.group("data"), validate=True)
        except binascii.Error as exc:
            raise ValueError(f"invalid base64 payload: {exc}") from exc
        return cls.from_upload(data, match.group("mime"), filename)
