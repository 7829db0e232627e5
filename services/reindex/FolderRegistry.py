"""Persisted, ordered list of collection folder ids."""

from shared.clients.kv.KVClientInterface import KVClientInterface
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.helper.HelperConfig import HelperConfig

FOLDER_IDS_KEY = "reindex:folder_ids"


class FolderRegistry:
    """The scheduler's address space. Its order stays stable until the next refresh."""

    def __init__(self, helper_config: HelperConfig, kv_client: KVClientInterface, store_client: StoreClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._kv = kv_client
        self._store = store_client

    async def do_get_ids(self) -> list[str]:
        raw = await self._kv.do_get_json(FOLDER_IDS_KEY)
        if not isinstance(raw, list):
            return []
        return [str(folder_id) for folder_id in raw]

    async def do_put_ids(self, folder_ids: list[str]) -> None:
        await self._kv.do_put_json(FOLDER_IDS_KEY, folder_ids)

    async def do_refresh(self) -> list[str]:
        """Relist the item folders under the collection root and persist their ids.

        Returns:
            list[str]: The new ordered folder ids.
        """
        folders = await self._store.do_list_item_folders()
        folder_ids = [folder.id for folder in folders]
        await self.do_put_ids(folder_ids)
        self.logging.info("Folder registry refreshed with %d folders", len(folder_ids))
        return folder_ids
