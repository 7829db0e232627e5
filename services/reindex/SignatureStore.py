"""Per-folder seen signature records, persisted in the KV metadata store."""

from shared.clients.kv.KVClientInterface import KVClientInterface
from shared.clients.store.models.StoreObject import ContentSignature
from shared.helper.HelperConfig import HelperConfig

SEEN_PREFIX = "seenmap:"


class SignatureStore:
    """Maps object id to the content signature it had when it was last indexed.

    One KV document per folder, so a folder diff costs one read and one write.
    """

    def __init__(self, helper_config: HelperConfig, kv_client: KVClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._kv = kv_client

    @staticmethod
    def key_for(folder_id: str) -> str:
        return f"{SEEN_PREFIX}{folder_id}"

    async def do_get(self, folder_id: str) -> dict[str, ContentSignature]:
        """Load the seen record of a folder. A folder never indexed has an empty record."""
        raw = await self._kv.do_get_json(self.key_for(folder_id))
        if not isinstance(raw, dict):
            return {}
        seen: dict[str, ContentSignature] = {}
        for object_id, sig in raw.items():
            if isinstance(sig, dict):
                seen[object_id] = ContentSignature(
                    md5Checksum=sig.get("md5Checksum"),
                    modifiedTime=sig.get("modifiedTime"),
                )
        return seen

    async def do_put(self, folder_id: str, seen: dict[str, ContentSignature]) -> None:
        """Replace the seen record of a folder in one write."""
        payload = {object_id: sig.model_dump() for object_id, sig in seen.items()}
        await self._kv.do_put_json(self.key_for(folder_id), payload)
        self.logging.debug("Stored %d seen signatures for folder %s", len(payload), folder_id)
