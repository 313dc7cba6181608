"""
Prometheus remote storage protocol - protobuf messages, snappy block compressed.

Only the messages and fields the adapter uses are handled. Unknown fields are
skipped so newer senders (exemplars, histograms, metadata, read hints) still
decode.

    message WriteRequest { repeated TimeSeries timeseries = 1; }
    message ReadRequest  { repeated Query queries = 1; }
    message ReadResponse { repeated QueryResult results = 1; }
    message QueryResult  { repeated TimeSeries timeseries = 1; }
    message Query        { int64 start_timestamp_ms = 1; int64 end_timestamp_ms = 2;
                           repeated LabelMatcher matchers = 3; }
    message LabelMatcher { Type type = 1; string name = 2; string value = 3; }
    message TimeSeries   { repeated Label labels = 1; repeated Sample samples = 2; }
    message Label        { string name = 1; string value = 2; }
    message Sample       { double value = 1; int64 timestamp = 2; }
"""

import struct
from collections.abc import Iterator

import snappy
from pydantic import ValidationError

from pgprom.core.domain.errors import ProtocolError
from pgprom.core.domain.samples import (
    LabelMatcher,
    LabelPair,
    MatchType,
    Query,
    ReadRequest,
    ReadResponse,
    SamplePoint,
    TimeSeries,
    WriteRequest,
)

PROTOBUF_CONTENT_TYPE = "application/x-protobuf"

# Protobuf wire types
WIRE_VARINT = 0
WIRE_FIXED64 = 1
WIRE_LENGTH_DELIMITED = 2
WIRE_FIXED32 = 5

# LabelMatcher.Type enum values, in proto order.
MATCH_TYPES = [
    MatchType.EQUAL,
    MatchType.NOT_EQUAL,
    MatchType.REGEX_MATCH,
    MatchType.REGEX_NO_MATCH,
]
MATCH_TYPE_NUMBERS = {match_type: number for number, match_type in enumerate(MATCH_TYPES)}

_UINT64_MASK = (1 << 64) - 1


# -- encoding ---------------------------------------------------------------

def _encode_varint(value: int) -> bytes:
    """Encode an integer as a protobuf varint. Negative values take ten bytes."""
    value &= _UINT64_MASK
    result = []
    while value > 127:
        result.append((value & 0x7F) | 0x80)
        value >>= 7
    result.append(value)
    return bytes(result)


def _encode_field(field_number: int, wire_type: int, data: bytes) -> bytes:
    tag = (field_number << 3) | wire_type
    return _encode_varint(tag) + data


def _encode_bytes(field_number: int, data: bytes) -> bytes:
    return _encode_field(field_number, WIRE_LENGTH_DELIMITED, _encode_varint(len(data)) + data)


def _encode_string(field_number: int, value: str) -> bytes:
    return _encode_bytes(field_number, value.encode("utf-8"))


def _encode_double(field_number: int, value: float) -> bytes:
    return _encode_field(field_number, WIRE_FIXED64, struct.pack("<d", value))


def _encode_int64(field_number: int, value: int) -> bytes:
    return _encode_field(field_number, WIRE_VARINT, _encode_varint(value))


def _encode_label(label: LabelPair) -> bytes:
    return _encode_string(1, label.name) + _encode_string(2, label.value)


def _encode_sample(sample: SamplePoint) -> bytes:
    return _encode_double(1, sample.value) + _encode_int64(2, sample.timestamp_ms)


def _encode_timeseries(series: TimeSeries) -> bytes:
    parts = [_encode_bytes(1, _encode_label(label)) for label in series.labels]
    parts.extend(_encode_bytes(2, _encode_sample(sample)) for sample in series.samples)
    return b"".join(parts)


def _encode_matcher(matcher: LabelMatcher) -> bytes:
    return (
        _encode_int64(1, MATCH_TYPE_NUMBERS[matcher.type])
        + _encode_string(2, matcher.name)
        + _encode_string(3, matcher.value)
    )


def _encode_query(query: Query) -> bytes:
    parts = [
        _encode_int64(1, query.start_timestamp_ms),
        _encode_int64(2, query.end_timestamp_ms),
    ]
    parts.extend(_encode_bytes(3, _encode_matcher(m)) for m in query.matchers)
    return b"".join(parts)


def encode_read_response(response: ReadResponse) -> bytes:
    """Serialize and compress a read response for the HTTP body."""
    message = b"".join(
        _encode_bytes(1, b"".join(_encode_bytes(1, _encode_timeseries(s)) for s in result.timeseries))
        for result in response.results
    )
    return snappy.compress(message)


def encode_write_request(request: WriteRequest) -> bytes:
    """Serialize and compress a write request, as a remote_write sender does."""
    return snappy.compress(b"".join(_encode_bytes(1, _encode_timeseries(s)) for s in request.timeseries))


def encode_read_request(request: ReadRequest) -> bytes:
    """Serialize and compress a read request, as a remote_read sender does."""
    return snappy.compress(b"".join(_encode_bytes(1, _encode_query(q)) for q in request.queries))


# -- decoding ---------------------------------------------------------------

def _decode_varint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    shift = 0
    while True:
        if pos >= len(data):
            raise ProtocolError("Truncated varint")
        if shift >= 64:
            raise ProtocolError("Varint longer than 64 bits")
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return result & _UINT64_MASK, pos
        shift += 7


def _iter_fields(data: bytes) -> Iterator[tuple[int, int, int | bytes]]:
    """
    Walk the fields of one message.

    Yields (field_number, wire_type, value) where value is an int for varints
    and the raw bytes for every other wire type.
    """
    pos = 0
    end = len(data)
    while pos < end:
        tag, pos = _decode_varint(data, pos)
        field_number, wire_type = tag >> 3, tag & 0x07
        if field_number == 0:
            raise ProtocolError("Invalid field number 0")

        if wire_type == WIRE_VARINT:
            value, pos = _decode_varint(data, pos)
        elif wire_type == WIRE_FIXED64:
            value, pos = data[pos:pos + 8], pos + 8
        elif wire_type == WIRE_LENGTH_DELIMITED:
            length, pos = _decode_varint(data, pos)
            value, pos = data[pos:pos + length], pos + length
        elif wire_type == WIRE_FIXED32:
            value, pos = data[pos:pos + 4], pos + 4
        else:
            raise ProtocolError(f"Unsupported wire type {wire_type} for field {field_number}")

        if pos > end:
            raise ProtocolError(f"Truncated field {field_number}")
        yield field_number, wire_type, value


def _expect(field_number: int, wire_type: int, expected: int) -> None:
    if wire_type != expected:
        raise ProtocolError(f"Field {field_number} has wire type {wire_type}, expected {expected}")


def _to_int64(value: int) -> int:
    return value - (1 << 64) if value >= 1 << 63 else value


def _to_text(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ProtocolError(f"String field is not valid UTF-8: {e}") from e


def _decode_label(data: bytes) -> LabelPair:
    name, value = "", ""
    for number, wire_type, raw in _iter_fields(data):
        if number == 1:
            _expect(number, wire_type, WIRE_LENGTH_DELIMITED)
            name = _to_text(raw)
        elif number == 2:
            _expect(number, wire_type, WIRE_LENGTH_DELIMITED)
            value = _to_text(raw)
    return LabelPair(name=name, value=value)


def _decode_sample(data: bytes) -> SamplePoint:
    value, timestamp_ms = 0.0, 0
    for number, wire_type, raw in _iter_fields(data):
        if number == 1:
            _expect(number, wire_type, WIRE_FIXED64)
            (value,) = struct.unpack("<d", raw)
        elif number == 2:
            _expect(number, wire_type, WIRE_VARINT)
            timestamp_ms = _to_int64(raw)
    return SamplePoint(timestamp_ms=timestamp_ms, value=value)


def _decode_timeseries(data: bytes) -> TimeSeries:
    labels, samples = [], []
    for number, wire_type, raw in _iter_fields(data):
        if number == 1:
            _expect(number, wire_type, WIRE_LENGTH_DELIMITED)
            labels.append(_decode_label(raw))
        elif number == 2:
            _expect(number, wire_type, WIRE_LENGTH_DELIMITED)
            samples.append(_decode_sample(raw))
    return TimeSeries(labels=labels, samples=samples)


def _decode_matcher(data: bytes) -> LabelMatcher:
    match_type, name, value = 0, "", ""
    for number, wire_type, raw in _iter_fields(data):
        if number == 1:
            _expect(number, wire_type, WIRE_VARINT)
            match_type = raw
        elif number == 2:
            _expect(number, wire_type, WIRE_LENGTH_DELIMITED)
            name = _to_text(raw)
        elif number == 3:
            _expect(number, wire_type, WIRE_LENGTH_DELIMITED)
            value = _to_text(raw)

    if match_type < len(MATCH_TYPES):
        return LabelMatcher(name=name, type=MATCH_TYPES[match_type], value=value)
    # Kept as-is so compiling the query fails with UnsupportedMatchType.
    return LabelMatcher.model_construct(name=name, type=match_type, value=value)


def _decode_query(data: bytes) -> Query:
    start, end, matchers = 0, 0, []
    for number, wire_type, raw in _iter_fields(data):
        if number == 1:
            _expect(number, wire_type, WIRE_VARINT)
            start = _to_int64(raw)
        elif number == 2:
            _expect(number, wire_type, WIRE_VARINT)
            end = _to_int64(raw)
        elif number == 3:
            _expect(number, wire_type, WIRE_LENGTH_DELIMITED)
            matchers.append(_decode_matcher(raw))
    return Query(matchers=matchers, start_timestamp_ms=start, end_timestamp_ms=end)


def _uncompress(body: bytes) -> bytes:
    try:
        return snappy.decompress(body)
    except Exception as e:
        raise ProtocolError(f"Body is not snappy block compressed: {e}") from e


def decode_write_request(body: bytes) -> WriteRequest:
    """
    Decode a remote_write HTTP body.

    Raises:
        ProtocolError: if the body is not a snappy compressed WriteRequest,
            or a series repeats a label name.
    """
    data = _uncompress(body)
    try:
        timeseries = []
        for number, wire_type, raw in _iter_fields(data):
            if number == 1:
                _expect(number, wire_type, WIRE_LENGTH_DELIMITED)
                timeseries.append(_decode_timeseries(raw))
        return WriteRequest(timeseries=timeseries)
    except ValidationError as e:
        raise ProtocolError(f"Invalid write request: {e}") from e


def decode_read_request(body: bytes) -> ReadRequest:
    """
    Decode a remote_read HTTP body.

    Matchers with an unknown type are passed through untouched; they are
    rejected when the query is compiled.

    Raises:
        ProtocolError: if the body is not a snappy compressed ReadRequest.
    """
    data = _uncompress(body)
    queries = []
    for number, wire_type, raw in _iter_fields(data):
        if number == 1:
            _expect(number, wire_type, WIRE_LENGTH_DELIMITED)
            queries.append(_decode_query(raw))
    return ReadRequest(queries=queries)
