"""Scheduled reindex entry point.

Performs one scheduled tick (a small stateful pass over the folder registry)
and exits. Meant to be fired by a host cron.

Usage:
    python -m services.reindex.reindex_runner
"""

import asyncio

from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.kv.KVClientManager import KVClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.store.StoreClientManager import StoreClientManager
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from services.reindex.ChangeDetector import ChangeDetector
from services.reindex.FolderRegistry import FolderRegistry
from services.reindex.ReindexScheduler import ReindexScheduler
from services.reindex.SignatureStore import SignatureStore


def build_scheduler(config: HelperConfig, store_client, embed_client, rag_client, kv_client) -> ReindexScheduler:
    """Wire the reindex services on top of booted clients."""
    signature_store = SignatureStore(helper_config=config, kv_client=kv_client)
    registry = FolderRegistry(helper_config=config, kv_client=kv_client, store_client=store_client)
    detector = ChangeDetector(
        helper_config=config,
        store_client=store_client,
        embed_client=embed_client,
        rag_client=rag_client,
        signature_store=signature_store,
    )
    return ReindexScheduler(
        helper_config=config,
        store_client=store_client,
        kv_client=kv_client,
        registry=registry,
        detector=detector,
    )


async def main() -> None:
    """Boot all clients and run a single scheduled tick."""
    logger = setup_logging()
    config = HelperConfig(logger=logger)

    store_client = StoreClientManager(helper_config=config).get_client()
    embed_client = EmbedClientManager(helper_config=config).get_client()
    rag_client = RAGClientManager(helper_config=config).get_client()
    kv_client = KVClientManager(helper_config=config).get_client()
    clients = [store_client, embed_client, rag_client, kv_client]

    try:
        for client in clients:
            await client.boot()

        scheduler = build_scheduler(config, store_client, embed_client, rag_client, kv_client)
        result = await scheduler.do_scheduled_tick()
        if result is not None:
            logger.info(
                "Scheduled tick finished: %d folders, %d changed, cursor %s of %d",
                result.counts.folders, result.counts.changed, result.cursor, result.totalFolders,
            )
    finally:
        for client in clients:
            await client.close()


if __name__ == "__main__":
    asyncio.run(main())
