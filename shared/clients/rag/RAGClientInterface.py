from abc import abstractmethod
from typing import Any

from shared.clients.ClientInterface import ClientInterface
from shared.clients.rag.models.VectorEntry import QueryHit, VectorEntry
from shared.helper.HelperConfig import HelperConfig


class RAGClientInterface(ClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        return "rag"

    ##########################################
    ############### REQUESTS #################
    ##########################################

    @abstractmethod
    async def do_upsert(self, entries: list[VectorEntry]) -> int:
        """Insert or overwrite vectors by id.

        Args:
            entries (list[VectorEntry]): The vectors to write. An empty list is a no-op.

        Returns:
            int: Number of entries written.

        Raises:
            UpstreamError: If the backend rejects the write.
        """
        pass

    @abstractmethod
    async def do_query(self, vector: list[float], top_k: int, filter: dict[str, Any] | None = None) -> list[QueryHit]:
        """Return the top_k nearest vectors ordered by descending similarity.

        Args:
            vector (list[float]): The query vector.
            top_k (int): Maximum number of hits.
            filter (dict[str, Any] | None): Metadata equality constraints, e.g. {"itemId": "0007"}.

        Returns:
            list[QueryHit]: Hits with id, score and metadata.

        Raises:
            UpstreamError: If the backend rejects the query.
        """
        pass

    async def do_upsert_batched(self, entries: list[VectorEntry], batch_size: int = 50) -> int:
        """Upsert entries in fixed-size batches.

        Returns:
            int: Total number of entries written.
        """
        written = 0
        for start in range(0, len(entries), batch_size):
            written += await self.do_upsert(entries[start:start + batch_size])
        return written
