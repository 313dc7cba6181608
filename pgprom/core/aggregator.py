"""
Series Aggregator - Folds result rows into per-series sample sequences.

One aggregator belongs to one read call. Rows from every query of that call
are merged into the same grouping, so the response carries a single result
holding the union of all matched series.

Samples are appended in row arrival order. No sorting or deduplication is
done here: ordering within a series is whatever the row stream delivers.
"""

from datetime import datetime

from pgprom.core.domain.samples import (
    METRIC_NAME_LABEL,
    LabelPair,
    QueryResult,
    ReadResponse,
    SamplePoint,
    TimeSeries,
)
from pgprom.core.labels import SampleLabels, decode_labels
from pgprom.core.timestamps import to_milliseconds


class SeriesAggregator:
    """Groups rows by canonical series key."""

    def __init__(self):
        self._series: dict[bytes, TimeSeries] = {}

    def __len__(self) -> int:
        return len(self._series)

    def add_row(self, time: datetime | int, name: str, value: float, labels: object) -> None:
        """
        Add one result row.

        Args:
            time: Row timestamp, a datetime or epoch milliseconds
            name: Metric name column
            value: Sample value
            labels: Raw labels column, decoded with `decode_labels`

        Raises:
            DecodeError: if the labels column cannot be decoded
        """
        decoded = decode_labels(labels)
        timestamp_ms = time if isinstance(time, int) else to_milliseconds(time)
        self.add_sample(name, decoded, timestamp_ms, float(value))

    def add_sample(self, name: str, labels: SampleLabels, timestamp_ms: int, value: float) -> None:
        key = labels.key(name)
        series = self._series.get(key)

        if series is None:
            pairs = [LabelPair(name=METRIC_NAME_LABEL, value=name)]
            pairs.extend(
                LabelPair(name=k, value=labels.mapping[k])
                for k in labels.ordered_keys
                if k != METRIC_NAME_LABEL
            )
            series = TimeSeries(labels=pairs)
            self._series[key] = series

        series.samples.append(SamplePoint(timestamp_ms=timestamp_ms, value=value))

    def response(self) -> ReadResponse:
        """Bundle every series seen so far, in first-seen order, into one result."""
        return ReadResponse(results=[QueryResult(timeseries=list(self._series.values()))])
