import os

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse

from app.api.deps import get_artifact_store
from app.core.exceptions import InvalidInputError
from app.services.storage import LocalArtifactStore


router = APIRouter(tags=["media"])


@router.get("/{key}")
def read_media(
    key: str,
    expires: int | None = Query(default=None),
    signature: str | None = Query(default=None),
    store: LocalArtifactStore = Depends(get_artifact_store),
):
    try:
        path = store.path_for(key)
    except InvalidInputError:
        raise HTTPException(status_code=404, detail="media not found")

    if not store.public_read and (expires is None or not store.verify(key, expires, signature or "")):
        raise HTTPException(status_code=403, detail="invalid or expired media signature")

    if not os.path.isfile(path):
        raise HTTPException(status_code=404, detail="media not found")
    return FileResponse(path, media_type="image/png")
