"""
Sample Domain Models - Remote storage messages and the internal write sample.

Wire messages use Pydantic for validation; the write-path Sample is a plain
dataclass that only lives for the duration of one write call.
"""

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, Field, model_validator

METRIC_NAME_LABEL = "__name__"


@dataclass
class Sample:
    """A single sample to be written."""

    timestamp: int  # milliseconds since epoch, UTC
    name: str
    labels: dict[str, str] = field(default_factory=dict)
    value: float = 0.0


class MatchType(str, Enum):
    EQUAL = "EQUAL"
    NOT_EQUAL = "NOT_EQUAL"
    REGEX_MATCH = "REGEX_MATCH"
    REGEX_NO_MATCH = "REGEX_NO_MATCH"


class LabelMatcher(BaseModel):
    """A single label filter applied to a query."""

    name: str
    type: MatchType = MatchType.EQUAL
    value: str = ""


class Query(BaseModel):
    """Matchers plus an inclusive millisecond time range."""

    matchers: list[LabelMatcher] = Field(default_factory=list)
    start_timestamp_ms: int
    end_timestamp_ms: int


class LabelPair(BaseModel):
    name: str
    value: str


class SamplePoint(BaseModel):
    timestamp_ms: int
    value: float


class TimeSeries(BaseModel):
    """
    Labels and samples of one series.

    On the read path labels are ordered with __name__ first and the rest
    sorted by name.
    """

    labels: list[LabelPair] = Field(default_factory=list)
    samples: list[SamplePoint] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_label_names(self) -> "TimeSeries":
        names = [pair.name for pair in self.labels]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate label names in series: {sorted(names)}")
        return self


class WriteRequest(BaseModel):
    timeseries: list[TimeSeries] = Field(default_factory=list)

    def to_samples(self) -> list[Sample]:
        """Flatten every series into Samples, preserving request order."""
        samples = []
        for series in self.timeseries:
            labels = {pair.name: pair.value for pair in series.labels}
            name = labels.pop(METRIC_NAME_LABEL, "")
            for point in series.samples:
                samples.append(Sample(
                    timestamp=point.timestamp_ms,
                    name=name,
                    labels=labels,
                    value=point.value,
                ))
        return samples


class ReadRequest(BaseModel):
    queries: list[Query] = Field(default_factory=list)


class QueryResult(BaseModel):
    timeseries: list[TimeSeries] = Field(default_factory=list)


class ReadResponse(BaseModel):
    results: list[QueryResult] = Field(default_factory=list)
