from fastapi import APIRouter, Path, Query, Request
from fastapi.responses import Response, StreamingResponse
from starlette.background import BackgroundTask

from server.models.responses import CheckFolderResponse, ImageLinksResponse, UploadResponse, UploadedFile

router = APIRouter(tags=["store"])

# upstream headers forwarded to the client on file downloads
FORWARDED_HEADERS = ("content-type", "content-length", "content-encoding", "content-range", "accept-ranges", "etag", "last-modified")


@router.get("/images")
async def list_images(request: Request, folderId: str = Query(default="")) -> ImageLinksResponse:
    """List proxy and direct view URLs of the images in a folder."""
    service = request.app.state.store_proxy_service
    links = await service.do_list_image_links(folderId, str(request.base_url))
    return ImageLinksResponse(**links)


@router.api_route("/file/{file_id}", methods=["GET", "HEAD"])
async def get_file(request: Request, file_id: str = Path(pattern=r"^[A-Za-z0-9_-]+$")) -> Response:
    """Stream an object from the store, forwarding the Range header.

    The upstream status is passed through, so a ranged request answers 206.
    """
    service = request.app.state.store_proxy_service
    upstream = await service.do_open_file(file_id, request.headers.get("range"))

    headers = {k: v for k, v in upstream.headers.items() if k.lower() in FORWARDED_HEADERS}
    headers["Cache-Control"] = "public, max-age=86400"
    headers["Cross-Origin-Resource-Policy"] = "cross-origin"
    disposition = upstream.headers.get("content-disposition", "")
    if not disposition or "attachment" in disposition.lower():
        headers["Content-Disposition"] = 'inline; filename="image"'
    else:
        headers["Content-Disposition"] = disposition
    headers.setdefault("content-type", "image/jpeg")

    if request.method == "HEAD":
        await upstream.aclose()
        return Response(status_code=upstream.status_code, headers=headers)
    return StreamingResponse(
        upstream.aiter_raw(),
        status_code=upstream.status_code,
        headers=headers,
        background=BackgroundTask(upstream.aclose),
    )


@router.post("/upload-stream")
async def upload_stream(request: Request, folderId: str | None = Query(default=None)) -> UploadResponse:
    """Stream the request body into a new store object through a resumable session.

    Headers: X-File-Name (URL-encoded name), X-Upload-Content-Length (total size,
    optional), X-Upload-Meta (JSON object stored with the object), Content-Type.
    """
    service = request.app.state.store_proxy_service
    uploaded = await service.do_upload_stream(
        stream=request.stream(),
        base_url=str(request.base_url),
        folder_id=folderId,
        file_name=request.headers.get("x-file-name"),
        content_type=request.headers.get("content-type"),
        declared_size=request.headers.get("x-upload-content-length") or request.headers.get("content-length"),
        meta_header=request.headers.get("x-upload-meta"),
    )
    return UploadResponse(file=UploadedFile(**uploaded))


@router.get("/check-folder")
async def check_folder(request: Request, folderId: str = Query(default="")) -> CheckFolderResponse:
    """Return the store's raw metadata response for a folder id."""
    result = await request.app.state.store_proxy_service.do_check_folder(folderId.strip())
    return CheckFolderResponse(**result)
