"""
Label Canonicalizer - Decodes stored label documents into comparable keys.

Each result row carries its labels as a JSON object and the metric name in a
separate column. Two rows belong to the same series exactly when name and full
label map are equal, which is what `SampleLabels.key` encodes.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field

from pgprom.core.domain.errors import DecodeError

# Label text is compared as UTF-8 bytes. The byte 0xff never occurs in valid
# UTF-8, so it cannot collide with label content (U+00FF encodes as c3 bf).
SEPARATOR = b"\xff"


def _utf8(text: str) -> bytes:
    # surrogatepass keeps lone surrogates from JSON escapes encodable; they
    # never produce 0xff either.
    return text.encode("utf-8", "surrogatepass")


@dataclass
class SampleLabels:
    """Decoded labels of one result row."""

    raw: str = "{}"
    mapping: dict[str, str] = field(default_factory=dict)
    ordered_keys: list[str] = field(default_factory=list)

    @classmethod
    def from_map(cls, labels: Mapping[str, str], raw: str | None = None) -> "SampleLabels":
        labels = dict(labels)
        if raw is None:
            raw = json.dumps(labels, sort_keys=True)
        return cls(raw=raw, mapping=labels, ordered_keys=sorted(labels))

    def key(self, name: str) -> bytes:
        """Canonical series key for this label set under metric `name`."""
        pairs = [_utf8(name) + SEPARATOR]
        for k in self.ordered_keys:
            pairs.append(_utf8(k) + SEPARATOR + _utf8(self.mapping[k]))
        return SEPARATOR.join(pairs)

    def __len__(self) -> int:
        return len(self.ordered_keys)

    def __str__(self) -> str:
        return self.raw


def decode_labels(value: object) -> SampleLabels:
    """
    Decode a label column value.

    Accepted encodings:
        None: SQL NULL, an empty label set
        bytes / bytearray / memoryview: UTF-8 JSON document
        str: JSON document (asyncpg returns jsonb as text by default)
        Mapping: an already decoded object

    Raises:
        DecodeError: for any other type, invalid JSON, or a document that is
            not an object of string keys to string values.
    """
    if value is None:
        return SampleLabels()

    if isinstance(value, (bytes, bytearray, memoryview)):
        try:
            text = bytes(value).decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Labels document is not valid UTF-8: {e}") from e
        return _decode_document(text)

    if isinstance(value, str):
        return _decode_document(value)

    if isinstance(value, Mapping):
        return SampleLabels.from_map(_check_labels(value))

    raise DecodeError(f"Invalid labels value {type(value).__name__}")


def _decode_document(text: str) -> SampleLabels:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Labels document is not valid JSON: {e}") from e
    return SampleLabels.from_map(_check_labels(document), raw=text)


def _check_labels(document: object) -> dict[str, str]:
    if not isinstance(document, Mapping):
        raise DecodeError(f"Labels document must be an object, got {type(document).__name__}")
    for k, v in document.items():
        if not isinstance(k, str) or not isinstance(v, str):
            raise DecodeError(f"Label {k!r} has non-string name or value")
    return dict(document)
