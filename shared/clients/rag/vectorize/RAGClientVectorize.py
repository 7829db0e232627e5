import json
from typing import Any

from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorEntry import QueryHit, VectorEntry
from shared.helper.HelperConfig import HelperConfig
from shared.helper.errors import UpstreamError
from shared.models.config import EnvConfig


class RAGClientVectorize(RAGClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._account_id = self.get_config_val("ACCOUNT_ID", default=None, val_type="string")
        self._api_token = self.get_config_val("API_TOKEN", default=None, val_type="string")
        self._index_name = self.get_config_val("INDEX_NAME", default=None, val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Vectorize"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="ACCOUNT_ID", val_type="string", default=None),
            EnvConfig(env_key="API_TOKEN", val_type="string", default=None),
            EnvConfig(env_key="INDEX_NAME", val_type="string", default=None),
        ]

    ################ AUTH ##################
    async def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._api_token}"}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return f"https://api.cloudflare.com/client/v4/accounts/{self._account_id}/vectorize/v2/indexes/{self._index_name}"

    def _get_endpoint_healthcheck(self) -> str:
        return "/info"

    def _get_endpoint_upsert(self) -> str:
        return "/upsert"

    def _get_endpoint_query(self) -> str:
        return "/query"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_upsert_payload(self, entries: list[VectorEntry]) -> str:
        """Builds the newline-delimited JSON body, one vector record per line."""
        lines = [json.dumps({"id": e.id, "values": e.values, "metadata": e.metadata}) for e in entries]
        return "\n".join(lines) + "\n"

    def get_query_payload(self, vector: list[float], top_k: int, filter: dict[str, Any] | None) -> dict:
        payload: dict = {
            "vector": vector,
            "topK": top_k,
            "returnValues": False,
            "returnMetadata": "all",
        }
        if filter:
            payload["filter"] = filter
        return payload

    ##########################################
    ############### REQUESTS #################
    ##########################################

    def _unwrap_result(self, data: dict, action: str) -> dict:
        if not data.get("success", False):
            raise UpstreamError(f"Vectorize {action} was not successful", detail=json.dumps(data.get("errors", []))[:500])
        return data.get("result") or {}

    async def do_upsert(self, entries: list[VectorEntry]) -> int:
        if not entries:
            return 0
        resp = await self.do_request(
            method="POST",
            content=self.get_upsert_payload(entries),
            endpoint=self._get_endpoint_upsert(),
            additional_headers={"Content-Type": "application/x-ndjson"},
            raise_on_error=True,
        )
        self._unwrap_result(resp.json(), "upsert")
        self.logging.debug("Upserted %d vectors into Vectorize index '%s'", len(entries), self._index_name)
        return len(entries)

    async def do_query(self, vector: list[float], top_k: int, filter: dict[str, Any] | None = None) -> list[QueryHit]:
        resp = await self.do_request(
            method="POST",
            json=self.get_query_payload(vector, top_k, filter),
            endpoint=self._get_endpoint_query(),
            raise_on_error=True,
        )
        result = self._unwrap_result(resp.json(), "query")
        hits = [
            QueryHit(id=str(m["id"]), score=float(m.get("score", 0.0)), metadata=m.get("metadata") or {})
            for m in result.get("matches", [])
        ]
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits
