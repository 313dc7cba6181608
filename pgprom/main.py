import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, Response

from pgprom.adapters.config.settings_loader import load_settings
from pgprom.adapters.remote.protocol import (
    PROTOBUF_CONTENT_TYPE,
    decode_read_request,
    decode_write_request,
    encode_read_response,
)
from pgprom.adapters.tsdb.postgres import PostgresAdapter
from pgprom.core.domain.errors import (
    AdapterError,
    DecodeError,
    ProtocolError,
    ScanError,
    StoreConnectionError,
    UnsupportedMatchType,
    WriteError,
)
from pgprom.core.domain.samples import ReadRequest, ReadResponse, WriteRequest
from pgprom.core.ports.sample_store import SampleStore

# Configuration (Load from YAML with Env Overrides)
settings = load_settings()

# Logging
logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    UnsupportedMatchType: 400,
    ProtocolError: 400,
    DecodeError: 500,
    ScanError: 500,
    WriteError: 500,
    StoreConnectionError: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = PostgresAdapter.from_settings(settings)
    # Without a store connection the process cannot serve anything.
    await store.connect()
    try:
        await store.setup_pg_prometheus()
    except AdapterError:
        await store.close()
        raise
    app.state.store = store
    yield
    await store.close()


app = FastAPI(title="pgprom", lifespan=lifespan)


def get_store(request: Request) -> SampleStore:
    return request.app.state.store


@app.exception_handler(AdapterError)
async def adapter_error_handler(request: Request, exc: AdapterError):
    status = ERROR_STATUS.get(type(exc), 500)
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=status, content={"status": "error", "error": str(exc)})


@app.get("/health")
async def health_check(store: SampleStore = Depends(get_store)):
    try:
        await store.health_check()
    except StoreConnectionError as e:
        return JSONResponse(status_code=503, content={"status": "unavailable", "error": str(e)})
    return {"status": "ok"}


@app.post("/write")
async def write(request: WriteRequest, store: SampleStore = Depends(get_store)):
    """
    Write all samples of the request in one atomic batch.
    """
    samples = request.to_samples()
    written = await store.write(samples)
    return {"status": "success", "samples": written}


@app.post("/read", response_model=ReadResponse)
async def read(request: ReadRequest, store: SampleStore = Depends(get_store)):
    """
    Execute every query and return the union of matched series as one result.
    """
    return await store.read(request)


@app.post("/api/v1/write", status_code=204)
async def remote_write(request: Request, store: SampleStore = Depends(get_store)):
    """
    Prometheus remote_write endpoint: snappy compressed protobuf WriteRequest.
    """
    write_request = decode_write_request(await request.body())
    written = await store.write(write_request.to_samples())
    logger.debug(f"Remote write stored {written} samples")
    return Response(status_code=204)


@app.post("/api/v1/read")
async def remote_read(request: Request, store: SampleStore = Depends(get_store)):
    """
    Prometheus remote_read endpoint, answered with a snappy compressed
    protobuf ReadResponse.
    """
    read_request = decode_read_request(await request.body())
    response = await store.read(read_request)
    return Response(
        content=encode_read_response(response),
        media_type=PROTOBUF_CONTENT_TYPE,
        headers={"Content-Encoding": "snappy"},
    )
