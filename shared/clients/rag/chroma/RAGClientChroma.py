import asyncio
from typing import Any

import chromadb
from chromadb import ClientAPI
from chromadb.api.models.Collection import Collection

from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorEntry import QueryHit, VectorEntry
from shared.helper.HelperConfig import HelperConfig
from shared.helper.errors import ConfigurationError
from shared.models.config import EnvConfig


class RAGClientChroma(RAGClientInterface):
    """Vector index backed by an in-process ChromaDB persistent store.

    All chromadb calls are blocking and are run in a worker thread.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._path = self.get_config_val("PATH", default="./chroma", val_type="string")
        self._collection_name = self.get_config_val("COLLECTION", default="recognition", val_type="string")
        self._chroma: ClientAPI | None = None
        self._collection: Collection | None = None

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Chroma"

    def is_booted(self) -> bool:
        return self._collection is not None

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="PATH", val_type="string", default="./chroma"),
            EnvConfig(env_key="COLLECTION", val_type="string", default="recognition"),
        ]

    ################ AUTH ##################
    async def _get_auth_header(self) -> dict:
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        # in-process, no HTTP transport
        return ""

    def _get_endpoint_healthcheck(self) -> str:
        return ""

    ##########################################
    ################# OTHER ##################
    ##########################################

    def _get_collection(self) -> Collection:
        if self._collection is None:
            raise ConfigurationError("Chroma collection not initialised. Call boot() before making requests.")
        return self._collection

    def build_where(self, filter: dict[str, Any] | None) -> dict | None:
        """Translates flat equality constraints into a Chroma where clause."""
        if not filter:
            return None
        clauses = [{key: {"$eq": value}} for key, value in filter.items()]
        if len(clauses) == 1:
            return clauses[0]
        return {"$and": clauses}

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def boot(self) -> None:
        def _open() -> tuple[ClientAPI, Collection]:
            client = chromadb.PersistentClient(path=self._path)
            collection = client.get_or_create_collection(
                name=self._collection_name,
                metadata={"hnsw:space": "cosine"},
            )
            return client, collection

        self._chroma, self._collection = await asyncio.to_thread(_open)
        self.logging.info("Chroma collection ready: '%s' at %s", self._collection_name, self._path)

    async def close(self) -> None:
        self._collection = None
        self._chroma = None

    async def do_healthcheck(self) -> bool:
        try:
            await asyncio.to_thread(self._get_collection().count)
        except Exception as e:
            self.logging.error("Chroma healthcheck failed: %s", e)
            return False
        return True

    async def do_upsert(self, entries: list[VectorEntry]) -> int:
        if not entries:
            return 0
        collection = self._get_collection()
        await asyncio.to_thread(
            collection.upsert,
            ids=[e.id for e in entries],
            embeddings=[e.values for e in entries],
            metadatas=[e.metadata or {"kind": "unknown"} for e in entries],
        )
        self.logging.debug("Upserted %d vectors into Chroma collection '%s'", len(entries), self._collection_name)
        return len(entries)

    async def do_query(self, vector: list[float], top_k: int, filter: dict[str, Any] | None = None) -> list[QueryHit]:
        collection = self._get_collection()
        query_kwargs: dict[str, Any] = {
            "query_embeddings": [vector],
            "n_results": top_k,
            "include": ["metadatas", "distances"],
        }
        where = self.build_where(filter)
        if where is not None:
            query_kwargs["where"] = where

        res = await asyncio.to_thread(collection.query, **query_kwargs)
        ids = (res.get("ids") or [[]])[0]
        distances = (res.get("distances") or [[]])[0]
        metadatas = (res.get("metadatas") or [[]])[0] or [None] * len(ids)

        # cosine space: distance = 1 - similarity
        hits = [
            QueryHit(id=str(ids[i]), score=1.0 - float(distances[i]), metadata=dict(metadatas[i] or {}))
            for i in range(len(ids))
        ]
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits
