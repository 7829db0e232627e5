from abc import abstractmethod
import json
from typing import Any

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.helper.errors import UpstreamError


class KVClientInterface(ClientInterface):
    """Key-value metadata store holding JSON documents.

    Values are stored as JSON text. A missing key reads as None.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "kv"
        """
        return "kv"

    ################ ENDPOINTS ##################
    @abstractmethod
    def _get_endpoint_value(self, key: str) -> str:
        """
        Returns the endpoint path addressing the value of a key.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_get_text(self, key: str) -> str | None:
        """Read the raw value of a key.

        Returns:
            str | None: The stored text, or None if the key does not exist.

        Raises:
            UpstreamError: For any failure other than a missing key.
        """
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_value(key))
        if resp.status_code == 404:
            return None
        if not resp.is_success:
            self.raise_upstream_error(resp, f"KV read of '{key}'")
        return resp.text

    async def do_put_text(self, key: str, value: str) -> None:
        """Write the raw value of a key, replacing any previous value.

        Raises:
            UpstreamError: If the store rejects the write.
        """
        await self.do_request(
            method="PUT",
            content=value.encode("utf-8"),
            endpoint=self._get_endpoint_value(key),
            additional_headers={"Content-Type": "text/plain"},
            raise_on_error=True,
        )

    async def do_delete(self, key: str) -> None:
        """Delete a key. Deleting a missing key is not an error."""
        resp = await self.do_request(method="DELETE", endpoint=self._get_endpoint_value(key))
        if resp.status_code != 404 and not resp.is_success:
            self.raise_upstream_error(resp, f"KV delete of '{key}'")

    async def do_get_json(self, key: str) -> Any | None:
        """Read and decode a JSON value.

        Returns:
            Any | None: The decoded value, or None if the key does not exist.

        Raises:
            UpstreamError: If the stored value is not valid JSON.
        """
        raw = await self.do_get_text(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise UpstreamError(f"KV value of '{key}' is not valid JSON: {e}")

    async def do_put_json(self, key: str, value: Any) -> None:
        """Encode and write a JSON value."""
        await self.do_put_text(key, json.dumps(value))
