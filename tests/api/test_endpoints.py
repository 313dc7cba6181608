import pytest
import snappy
from unittest.mock import MagicMock, AsyncMock
from fastapi.testclient import TestClient

from pgprom.adapters.remote.protocol import (
    encode_read_request,
    encode_read_response,
    encode_write_request,
)
from pgprom.core.domain.errors import (
    ScanError,
    StoreConnectionError,
    UnsupportedMatchType,
    WriteError,
)
from pgprom.core.domain.samples import (
    LabelMatcher,
    LabelPair,
    Query,
    QueryResult,
    ReadRequest,
    ReadResponse,
    Sample,
    SamplePoint,
    TimeSeries,
    WriteRequest,
)
from pgprom.core.ports.sample_store import SampleStore
from pgprom.main import app, get_store

client = TestClient(app)


@pytest.fixture
def mock_store():
    store = MagicMock(spec=SampleStore)
    store.write = AsyncMock(return_value=0)
    store.read = AsyncMock()
    store.health_check = AsyncMock()
    app.dependency_overrides[get_store] = lambda: store
    yield store
    app.dependency_overrides.clear()


READ_PAYLOAD = {
    "queries": [
        {
            "matchers": [{"name": "__name__", "type": "EQUAL", "value": "up"}],
            "start_timestamp_ms": 0,
            "end_timestamp_ms": 60000,
        }
    ]
}


def test_write_endpoint(mock_store):
    mock_store.write.return_value = 2
    payload = {
        "timeseries": [
            {
                "labels": [{"name": "__name__", "value": "m"}, {"name": "a", "value": "1"}],
                "samples": [{"timestamp_ms": 1000, "value": 1.5}, {"timestamp_ms": 2000, "value": 2}],
            }
        ]
    }

    response = client.post("/write", json=payload)

    assert response.status_code == 200
    assert response.json() == {"status": "success", "samples": 2}
    samples = mock_store.write.await_args.args[0]
    assert samples == [
        Sample(timestamp=1000, name="m", labels={"a": "1"}, value=1.5),
        Sample(timestamp=2000, name="m", labels={"a": "1"}, value=2.0),
    ]


def test_write_failure_returns_500(mock_store):
    mock_store.write.side_effect = WriteError("Failed to write 1 samples: boom")

    response = client.post("/write", json={"timeseries": []})

    assert response.status_code == 500
    assert response.json()["status"] == "error"


def test_read_endpoint(mock_store):
    mock_store.read.return_value = ReadResponse(results=[QueryResult(timeseries=[
        TimeSeries(
            labels=[LabelPair(name="__name__", value="up"), LabelPair(name="job", value="node")],
            samples=[SamplePoint(timestamp_ms=1000, value=1.0)],
        )
    ])])

    response = client.post("/read", json=READ_PAYLOAD)

    assert response.status_code == 200
    body = response.json()
    assert len(body["results"]) == 1
    assert body["results"][0]["timeseries"][0]["labels"][0] == {"name": "__name__", "value": "up"}
    assert body["results"][0]["timeseries"][0]["samples"] == [{"timestamp_ms": 1000, "value": 1.0}]

    request = mock_store.read.await_args.args[0]
    assert request.queries[0].matchers[0].value == "up"


def test_read_error_mapping(mock_store):
    mock_store.read.side_effect = UnsupportedMatchType("Unknown match type")
    assert client.post("/read", json=READ_PAYLOAD).status_code == 400

    mock_store.read.side_effect = ScanError("Failed to read rows")
    assert client.post("/read", json=READ_PAYLOAD).status_code == 500


def test_read_rejects_invalid_match_type(mock_store):
    payload = {"queries": [{"matchers": [{"name": "a", "type": "FUZZY", "value": "b"}],
                            "start_timestamp_ms": 0, "end_timestamp_ms": 1}]}
    response = client.post("/read", json=payload)
    assert response.status_code == 422
    mock_store.read.assert_not_awaited()


def test_health(mock_store):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}

    mock_store.health_check.side_effect = StoreConnectionError("Health check failed")
    response = client.get("/health")
    assert response.status_code == 503


def test_remote_write_endpoint(mock_store):
    body = encode_write_request(WriteRequest(timeseries=[
        TimeSeries(
            labels=[LabelPair(name="__name__", value="m"), LabelPair(name="a", value="1")],
            samples=[SamplePoint(timestamp_ms=1000, value=1.5)],
        )
    ]))

    response = client.post(
        "/api/v1/write",
        content=body,
        headers={"Content-Type": "application/x-protobuf", "Content-Encoding": "snappy"},
    )

    assert response.status_code == 204
    samples = mock_store.write.await_args.args[0]
    assert samples == [Sample(timestamp=1000, name="m", labels={"a": "1"}, value=1.5)]


def test_remote_write_rejects_malformed_body(mock_store):
    response = client.post("/api/v1/write", content=snappy.compress(b"\x08\x01"))

    assert response.status_code == 400
    assert response.json()["status"] == "error"
    mock_store.write.assert_not_awaited()


def test_remote_read_endpoint(mock_store):
    result = ReadResponse(results=[QueryResult(timeseries=[
        TimeSeries(
            labels=[LabelPair(name="__name__", value="up")],
            samples=[SamplePoint(timestamp_ms=1000, value=1.0)],
        )
    ])])
    mock_store.read.return_value = result
    body = encode_read_request(ReadRequest(queries=[
        Query(matchers=[LabelMatcher(name="__name__", value="up")],
              start_timestamp_ms=-9223372036854775, end_timestamp_ms=9223372036854775),
    ]))

    response = client.post("/api/v1/read", content=body)

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/x-protobuf"
    assert response.headers["content-encoding"] == "snappy"
    assert response.content == encode_read_response(result)

    request = mock_store.read.await_args.args[0]
    assert request.queries[0].start_timestamp_ms == -9223372036854775
    assert request.queries[0].matchers[0].value == "up"


def test_remote_read_error_mapping(mock_store):
    body = encode_read_request(ReadRequest(queries=[Query(start_timestamp_ms=0, end_timestamp_ms=1)]))

    mock_store.read.side_effect = UnsupportedMatchType("Unknown match type 7")
    assert client.post("/api/v1/read", content=body).status_code == 400

    mock_store.read.side_effect = ScanError("Failed to read rows")
    assert client.post("/api/v1/read", content=body).status_code == 500

    assert client.post("/api/v1/read", content=b"\xff" * 8).status_code == 400
