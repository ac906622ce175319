"""
Signed blob downloads (targets of BlobStore temporary URLs).
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from storyframe.persistence import LocalBlobStore

from ..dependencies import get_blob_store
from ..exceptions import APIError, NotFoundError

router = APIRouter(prefix="/blobs", tags=["Blobs"])


@router.get("/{blob_id:path}", include_in_schema=False)
async def download_blob(
    blob_id: str,
    request: Request,
    blob_store: LocalBlobStore = Depends(get_blob_store),
) -> Response:
    if not blob_store.verify_temp_url(str(request.url)):
        raise APIError("链接已过期或签名无效", code="FORBIDDEN", status_code=403)
    try:
        data = await blob_store.read(blob_id)
    except FileNotFoundError:
        raise NotFoundError("Blob", blob_id)
    return Response(content=data, media_type="application/octet-stream")
