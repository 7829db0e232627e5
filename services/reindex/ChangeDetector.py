"""Incremental per-folder reindex.

Lists the images of one item folder, compares each against its seen
signature and embeds only the objects whose signature changed. Vectors are
upserted in batches and the folder's seen record is written once at the end.
"""

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorEntry import VectorEntry
from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.clients.store.models.StoreObject import ItemMeta
from shared.helper.HelperConfig import HelperConfig
from shared.helper.identifiers import normalize_item_id, shape_metadata
from shared.models.reindex import FolderReindexResult
from services.reindex.SignatureStore import SignatureStore

UPSERT_BATCH_SIZE = 50  # max vectors per index upsert call


class ChangeDetector:
    """Diffs one folder against its seen record and indexes the changed subset."""

    def __init__(
        self,
        helper_config: HelperConfig,
        store_client: StoreClientInterface,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
        signature_store: SignatureStore,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._store = store_client
        self._embed = embed_client
        self._rag = rag_client
        self._signatures = signature_store

    async def do_reindex_folder(
        self,
        folder_id: str,
        item_meta: ItemMeta | None,
        max_changed: int | None = None,
        write_seen: bool = True,
    ) -> FolderReindexResult:
        """Reindex the changed images of one item folder.

        Args:
            folder_id (str): The item folder.
            item_meta (ItemMeta | None): Item id and label of the folder. Folders without a
                usable item id are skipped without any remote call.
            max_changed (int | None): Maximum number of changed objects to process, None for unbounded.
            write_seen (bool): Persist the updated seen record. Disabled for dry runs.

        Returns:
            FolderReindexResult: scanned, changed and skipped (changed == 0).

        Raises:
            UpstreamError: If listing, fetching, embedding or upserting fails. Nothing is
                written to the seen record in that case.
        """
        item_id = normalize_item_id(item_meta.itemId if item_meta else None)
        if not item_id:
            self.logging.warning("Folder %s has no usable item id, skipping", folder_id)
            return FolderReindexResult(scanned=0, changed=0, skipped=True)
        label = item_meta.label if item_meta else None

        objects = await self._store.do_list_images_with_curated(folder_id)
        seen = await self._signatures.do_get(folder_id)

        pending: list[VectorEntry] = []
        scanned = 0
        changed = 0
        for obj in objects:
            scanned += 1
            signature = obj.signature
            if seen.get(obj.id) == signature:
                continue
            if max_changed is not None and changed >= max_changed:
                break

            image = await self._store.do_fetch_bytes(obj.id)
            vector = await self._embed.do_embed_image(image)
            pending.append(VectorEntry(
                id=obj.id,
                values=vector,
                metadata=shape_metadata({
                    "kind": "drive",
                    "fileId": obj.id,
                    "folderId": folder_id,
                    "itemId": item_id,
                    "label": label,
                }),
            ))
            seen[obj.id] = signature
            changed += 1
            self.logging.debug("Embedded %s (%s) for item %s", obj.id, obj.name, item_id)

            if len(pending) >= UPSERT_BATCH_SIZE:
                await self._rag.do_upsert(pending)
                pending = []

        if pending:
            await self._rag.do_upsert(pending)

        # an unchanged folder leaves its record as it was
        if write_seen and changed:
            await self._signatures.do_put(folder_id, seen)

        self.logging.info("Folder %s (item %s): scanned %d, changed %d", folder_id, item_id, scanned, changed)
        return FolderReindexResult(scanned=scanned, changed=changed, skipped=changed == 0)
