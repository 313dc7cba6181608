"""
Bulk Writer - Streams a batch of samples into the samples table via COPY.

Each sample becomes one row in pg_prometheus' text input format:

    <series> <value> <timestamp-ms>

where <series> is `name` or `name{k="v",...}` with labels sorted by key.
The whole batch is loaded inside one transaction and is either committed
completely or rolled back.
"""

import logging
import math
from collections.abc import AsyncIterator, Iterable, Sequence
from decimal import Decimal

import asyncpg

from pgprom.core.domain.errors import WriteError
from pgprom.core.domain.samples import METRIC_NAME_LABEL, Sample

logger = logging.getLogger(__name__)

# Characters with special meaning in COPY's text format.
_COPY_ESCAPES = str.maketrans({
    "\\": "\\\\",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
})

# Backslash escapes with a short form; everything else non-printable is
# written as a \x, \u or \U code point escape.
_SHORT_ESCAPES = {
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
    "\\": "\\\\",
    '"': '\\"',
}


def quote_label_value(value: str) -> str:
    """
    Double-quote a label value the way pg_prometheus' series parser expects.

    Printable characters, non-ASCII included, pass through unchanged.
    """
    out = ['"']
    for ch in value:
        escaped = _SHORT_ESCAPES.get(ch)
        if escaped is not None:
            out.append(escaped)
        elif ch.isprintable():
            out.append(ch)
        else:
            point = ord(ch)
            if point < 0x80:
                out.append(f"\\x{point:02x}")
            elif point < 0x10000:
                out.append(f"\\u{point:04x}")
            else:
                out.append(f"\\U{point:08x}")
    out.append('"')
    return "".join(out)


def metric_string(name: str, labels: dict[str, str]) -> str:
    """Render the series text of a sample."""
    label_strings = sorted(
        f"{k}={quote_label_value(v)}"
        for k, v in labels.items()
        if k != METRIC_NAME_LABEL
    )
    if not label_strings:
        return name if name else "{}"
    return f"{name}{{{','.join(label_strings)}}}"


def format_value(value: float) -> str:
    """Shortest round-tripping decimal, always in positional notation."""
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_sample(sample: Sample) -> str:
    """Format one sample as a load line, without the trailing newline."""
    return f"{metric_string(sample.name, sample.labels)} {format_value(sample.value)} {int(sample.timestamp)}"


def copy_escape(line: str) -> str:
    return line.translate(_COPY_ESCAPES)


async def _copy_stream(samples: Iterable[Sample]) -> AsyncIterator[bytes]:
    for sample in samples:
        yield (copy_escape(format_sample(sample)) + "\n").encode("utf-8")


async def write_samples(
    conn: asyncpg.Connection,
    table: str,
    samples: Sequence[Sample],
    schema: str | None = None,
) -> int:
    """
    Load `samples` into `table` in one transaction.

    Args:
        conn: An acquired connection, owned by the caller
        table: Target table name
        samples: Samples in write order
        schema: Optional schema of the table

    Returns:
        Number of samples written

    Raises:
        WriteError: on any formatting, transport, or commit failure. The
            transaction is rolled back and nothing from the batch is kept.
    """
    if not samples:
        return 0

    try:
        async with conn.transaction():
            await conn.copy_to_table(
                table,
                source=_copy_stream(samples),
                schema_name=schema or None,
                format="text",
            )
    except Exception as e:
        logger.error(f"Write of {len(samples)} samples to '{table}' failed, rolled back: {e}")
        raise WriteError(f"Failed to write {len(samples)} samples: {e}") from e

    logger.info(f"Wrote {len(samples)} samples to '{table}'")
    return len(samples)
