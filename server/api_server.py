"""FastAPI application entry point for the drive recognition bridge."""

import asyncio
from contextlib import asynccontextmanager, suppress
import os
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from shared.helper.errors import UpstreamError
from shared.clients.ClientInterface import ClientInterface
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.kv.KVClientManager import KVClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.store.StoreClientManager import StoreClientManager
from services.reindex.ReindexScheduler import ReindexScheduler
from services.reindex.reindex_runner import build_scheduler
from services.upload.ResumableUploadPipeline import ResumableUploadPipeline
from server.core.RecognitionService import RecognitionService
from server.core.StoreProxyService import StoreProxyService
from server.exception_handlers import register_exception_handlers
from server.routers.RecognitionRouter import router as recognition_router
from server.routers.ReindexRouter import router as reindex_router
from server.routers.StoreRouter import router as store_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")
cors_origin = os.getenv("CORS_ORIGIN", "*")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    app.state.logging = logging
    helper_config = HelperConfig(logger=logging)
    app.state.helper_config = helper_config

    store_client = StoreClientManager(helper_config=helper_config).get_client()
    embed_client = EmbedClientManager(helper_config=helper_config).get_client()
    rag_client = RAGClientManager(helper_config=helper_config).get_client()
    kv_client = KVClientManager(helper_config=helper_config).get_client()
    clients: list[ClientInterface] = [store_client, embed_client, rag_client, kv_client]

    logging.info("Booting all clients...")
    for client in clients:
        await client.boot()
    logging.info("All clients booted successfully.")

    app.state.store_client = store_client
    app.state.embed_client = embed_client
    app.state.rag_client = rag_client
    app.state.kv_client = kv_client

    app.state.reindex_scheduler = build_scheduler(helper_config, store_client, embed_client, rag_client, kv_client)
    app.state.recognition_service = RecognitionService(
        helper_config=helper_config,
        store_client=store_client,
        embed_client=embed_client,
        rag_client=rag_client,
    )
    app.state.store_proxy_service = StoreProxyService(
        helper_config=helper_config,
        store_client=store_client,
        pipeline=ResumableUploadPipeline(helper_config=helper_config, store_client=store_client),
    )

    await check_connections(store_client, embed_client, rag_client, kv_client)

    schedule_task: asyncio.Task | None = None
    interval = helper_config.get_int_val("REINDEX_SCHEDULE_INTERVAL_SECONDS", default=0, minimum=0)
    if interval > 0:
        logging.info("Scheduled reindex every %s seconds", interval)
        schedule_task = asyncio.create_task(scheduled_reindex_loop(app.state.reindex_scheduler, interval))

    # while the app is running...
    yield

    # when the app shuts down, stop the schedule and close all client connections
    if schedule_task is not None:
        schedule_task.cancel()
        with suppress(asyncio.CancelledError):
            await schedule_task
    logging.info("Shutting down, closing all clients...")
    for client in clients:
        await client.close()
    logging.info("All clients closed.")


app = FastAPI(
    title="drive_recognition_bridge",
    description=(
        "Keeps a similarity-search index of a remote image collection in sync, "
        "one bounded round-robin slice of item folders per run, and answers "
        "image and text queries with ranked items. Also proxies image listing, "
        "streamed downloads and resumable uploads to the remote store."
    ),
    version=app_version,
    lifespan=lifespan,
)
app.state.logging = logging

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if cors_origin == "*" else [cors_origin],
    allow_methods=["GET", "HEAD", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-Requested-With", "X-File-Name", "X-Upload-Content-Length", "X-Upload-Meta", "X-Admin-Token", "Range"],
    expose_headers=["Content-Range", "Accept-Ranges", "Content-Length"],
)

register_exception_handlers(app)
app.include_router(recognition_router)
app.include_router(reindex_router)
app.include_router(store_router)


@app.get("/", response_class=PlainTextResponse)
async def root() -> str:
    return (
        "Drive proxy is up. Endpoints: GET /images?folderId=.., GET /file/:id, "
        "POST /upload-stream, GET /check-folder, /recognition/*"
    )


async def scheduled_reindex_loop(scheduler: ReindexScheduler, interval: float) -> None:
    """Fire one scheduled reindex tick every interval seconds until cancelled.

    A failed tick is logged and the loop keeps its schedule.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            await scheduler.do_scheduled_tick()
        except Exception as e:
            logging.error("Scheduled reindex tick failed: %s", e)


async def check_connections(store_client, embed_client, rag_client, kv_client) -> None:
    """Check connectivity to all configured backends on startup.

    Store and embedding failures are non-fatal (requests will fail later, but the server stays up).
    Index and metadata store failures are fatal, nothing can be served or scheduled without them.

    Raises:
        UpstreamError: If the vector index or the metadata store is not reachable.
    """
    for client in (store_client, embed_client):
        if not await client.do_healthcheck():
            logging.warning("%s client '%s' is not reachable. Related requests may fail.",
                            client.get_client_type(), client.get_engine_name())

    for client in (rag_client, kv_client):
        if not await client.do_healthcheck():
            raise UpstreamError(f"{client.get_client_type()} client '{client.get_engine_name()}' is not reachable.")


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting drive_recognition_bridge API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
