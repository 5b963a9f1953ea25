"""
RecipeShare Backend: Uploaded Image Route
==========================================

Serves the images FileService stored. Recipe documents reference them as
`/uploads/<uuid>.<ext>`, which is exactly this route's path.
"""

from fastapi import APIRouter
from fastapi.responses import FileResponse

from recipe_api.config import settings
from recipe_api.exceptions import BadRequestError, NotFoundError
from recipe_api.services.file_service import file_service

router = APIRouter(tags=["Uploads"])


@router.get(
    settings.uploads_url_prefix.rstrip("/") + "/{file_path:path}",
    summary="Serve an uploaded recipe image",
    responses={
        200: {"description": "Image file"},
        404: {"description": "File not found"},
    },
)
async def serve_upload(file_path: str) -> FileResponse:
    full_path = (file_service.storage_root / file_path).resolve()

    # Reject ../ tricks: the resolved file must stay under the storage root
    if file_service.storage_root not in full_path.parents:
        raise BadRequestError(message="Invalid file path", field="file_path")

    if not full_path.is_file():
        raise NotFoundError(resource="file", resource_id=file_path)

    return FileResponse(
        path=str(full_path),
        headers={"Cache-Control": "public, max-age=86400"},
    )
