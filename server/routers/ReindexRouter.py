from fastapi import APIRouter, Depends, Query, Request

from server.dependencies.auth import verify_admin_token
from server.dependencies.body import read_json_model
from server.models.requests import BulkReindexRequest
from server.models.responses import (
    DiagResponse,
    FolderSample,
    ObjectSample,
    PeekResponse,
    RefreshFoldersResponse,
    ReindexRunResponse,
    StatusResponse,
    UpsertResponse,
)
from shared.helper.errors import BridgeError, ValidationError
from shared.models.reindex import ReindexRequest

router = APIRouter(
    prefix="/recognition/admin/reindex",
    tags=["reindex"],
    dependencies=[Depends(verify_admin_token)],
)

SAMPLE_SIZE = 20


@router.post("")
async def bulk_reindex(request: Request) -> UpsertResponse:
    """Embed and upsert every image directly inside one folder.

    Body: {"folderId": ..., "itemId"?, "label"?, "meta"?}. Unlike a reindex
    run this ignores seen records and writes every image again.

    Returns:
        UpsertResponse: indexed count.
    """
    body = await read_json_model(request, BulkReindexRequest)
    if not body.folderId:
        raise ValidationError("folderId required")
    indexed = await request.app.state.recognition_service.do_upsert_folder(body.folderId, body.itemId, body.label, body.meta)
    return UpsertResponse(indexed=indexed)


@router.post("/run")
async def run_reindex(
    request: Request,
    limitFolders: int = Query(default=5),
    maxChanged: int = Query(default=150),
    stateless: bool = Query(default=False),
    start: int = Query(default=0),
    dryRun: bool = Query(default=False),
) -> ReindexRunResponse:
    """Run one bounded reindex pass.

    Args:
        request (Request): FastAPI request (provides app.state.reindex_scheduler).
        limitFolders (int): Folders to visit, clamped to 1..100.
        maxChanged (int): Change budget. 0 is a dry run.
        stateless (bool): Process the slice starting at start instead of the persisted cursor.
        start (int): Slice offset for stateless runs.
        dryRun (bool): Do not write seen records or status.

    Returns:
        ReindexRunResponse: Counts and the next cursor (stateful) or nextStart (stateless).
    """
    scheduler = request.app.state.reindex_scheduler
    run_request = ReindexRequest(
        limit_folders=limitFolders,
        max_changed=maxChanged,
        stateless=stateless,
        start=start,
        dry_run=dryRun,
    )
    result = await scheduler.do_run(run_request)
    return ReindexRunResponse(**result.model_dump())


@router.post("/refresh-folders")
async def refresh_folders(request: Request) -> RefreshFoldersResponse:
    """Relist the folder registry and reset the cursor."""
    total = await request.app.state.reindex_scheduler.do_refresh_folders()
    return RefreshFoldersResponse(totalFolders=total)


@router.get("/status")
async def get_status(request: Request) -> StatusResponse:
    """Return the persisted reindex status."""
    status = await request.app.state.reindex_scheduler.get_status()
    return StatusResponse(status=status)


@router.get("/diag")
async def diag(request: Request) -> DiagResponse:
    """Report whether the collection root can be listed, with a sample of item folders."""
    store_client = request.app.state.store_client
    root_id = store_client.get_root_folder_id()
    folders = []
    error = None
    try:
        folders = await store_client.do_list_item_folders()
    except BridgeError as e:
        # reported in the body, diag must answer even when the store does not
        error = e.message
    return DiagResponse(
        rootId=root_id,
        canList=bool(folders),
        count=len(folders),
        sample=[FolderSample(id=f.id, name=f.name) for f in folders[:SAMPLE_SIZE]],
        error=error,
    )


@router.get("/peek")
async def peek(request: Request, folderId: str | None = Query(default=None)) -> PeekResponse:
    """Show the item metadata and the first image signatures of a folder."""
    if not folderId:
        raise ValidationError("folderId required")
    store_client = request.app.state.store_client
    meta = await store_client.do_read_item_meta(folderId)
    objects = await store_client.do_list_images_with_curated(folderId)
    return PeekResponse(
        meta=meta,
        count=len(objects),
        sample=[
            ObjectSample(id=o.id, name=o.name, mimeType=o.mimeType, modifiedTime=o.modifiedTime, md5Checksum=o.md5Checksum)
            for o in objects[:SAMPLE_SIZE]
        ],
    )
