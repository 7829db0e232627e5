from fastapi import APIRouter, Query, Request

from server.dependencies.body import is_json, read_image_bytes, read_json_model
from server.models.requests import QueryItemsRequest, QueryRequest, UpsertRequest, clamp_top_k
from server.models.responses import HealthResponse, QueryItemsResponse, QueryResponse, UpsertResponse
from shared.helper.errors import ValidationError

router = APIRouter(prefix="/recognition", tags=["recognition"])


@router.post("/upsert")
async def upsert(
    request: Request,
    folderId: str | None = Query(default=None),
    fileId: str | None = Query(default=None),
    itemId: str | None = Query(default=None),
    label: str | None = Query(default=None),
) -> UpsertResponse:
    """Embed and index images: a whole folder, one store object, or raw bytes.

    Query parameters take precedence over the JSON body. Without folderId or
    fileId the request body (multipart "file" or raw bytes) is embedded.

    Args:
        request (Request): FastAPI request (provides app.state.recognition_service).

    Returns:
        UpsertResponse: indexed count for folders, id and metadata otherwise.
    """
    service = request.app.state.recognition_service
    body = await read_json_model(request, UpsertRequest) if is_json(request) else UpsertRequest()
    item_id = itemId or body.itemId
    item_label = label or body.label

    folder_id = folderId or body.folderId
    if folder_id:
        indexed = await service.do_upsert_folder(folder_id, item_id, item_label, body.meta)
        return UpsertResponse(indexed=indexed)

    file_id = fileId or body.fileId
    if file_id:
        vector_id, meta = await service.do_upsert_file(file_id, item_id, item_label, body.meta)
    else:
        vector_id, meta = await service.do_upsert_bytes(await read_image_bytes(request), item_id, item_label, body.meta)
    return UpsertResponse(id=vector_id, meta=meta)


@router.post("/query")
async def query(request: Request, topK: int = Query(default=5)) -> QueryResponse:
    """Query the index by fileId, url or text (JSON), or by image bytes (multipart or raw body).

    Returns:
        QueryResponse: Raw hits ordered by descending similarity.
    """
    service = request.app.state.recognition_service
    top_k = clamp_top_k(topK)
    filter = None
    if is_json(request):
        body = await read_json_model(request, QueryRequest)
        if "topK" in body.model_fields_set:
            top_k = body.topK
        filter = body.filter
        if not (body.fileId or body.url or body.text):
            raise ValidationError("missing_input: provide fileId | url | text | (multipart file)")
        vector = await service.do_embed_query(file_id=body.fileId, url=body.url, text=body.text)
    else:
        vector = await service.do_embed_query(data=await read_image_bytes(request))

    hits = await service.do_query(vector, top_k, filter)
    return QueryResponse(topK=top_k, hits=hits)


@router.post("/query-items")
async def query_items(request: Request, body: QueryItemsRequest) -> QueryItemsResponse:
    """Query photo hits and aggregate them into ranked items.

    Returns:
        QueryItemsResponse: Up to topKItems items.
    """
    service = request.app.state.recognition_service
    if not (body.fileId or body.bytesBase64):
        raise ValidationError("fileId or bytesBase64 required")
    vector = await service.do_embed_query(file_id=body.fileId, bytes_b64=body.bytesBase64)
    items = await service.do_query_items(vector, body.topKPhotos, body.topKItems)
    return QueryItemsResponse(items=items)


@router.get("/health")
async def health(request: Request, fileId: str | None = Query(default=None)) -> HealthResponse:
    """Embed a probe image (or the given store object) and report the vector dimension."""
    service = request.app.state.recognition_service
    dimension = await service.do_health(fileId)
    return HealthResponse(source=request.app.state.embed_client.get_engine_name(), dimension=dimension)
