"""Backend-independent models of the remote file store."""

from pydantic import BaseModel


class StoreFolder(BaseModel):
    """
    A folder in the remote file store. Under the collection root, one folder represents one item.
    """
    id: str
    name: str | None = None


class ContentSignature(BaseModel):
    """
    Change signature of an object. Two objects with equal signatures are treated as identical content.

    Field names match the persisted seen-map format.
    """
    md5Checksum: str | None = None
    modifiedTime: str | None = None


class StoreObject(BaseModel):
    """
    A single file inside a folder, as listed by a store client.
    """
    id: str
    name: str | None = None
    mimeType: str | None = None
    md5Checksum: str | None = None
    modifiedTime: str | None = None
    parentId: str | None = None

    @property
    def signature(self) -> ContentSignature:
        return ContentSignature(md5Checksum=self.md5Checksum, modifiedTime=self.modifiedTime)


class ItemMeta(BaseModel):
    """
    Logical entity metadata of an item folder, read from its Item####.json or derived from the folder name.
    """
    itemId: str | None = None
    label: str | None = None
