from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import FileResponse

from pandamarket import storage
from pandamarket.dependencies import get_current_identity
from pandamarket.errors import NotFoundError
from pandamarket.middleware import SessionIdentity
from pandamarket.schemas import ImageUploadResponse
from pandamarket.services import image_service

router = APIRouter(prefix="/api/v1/images", tags=["images"])


@router.post("/upload", response_model=ImageUploadResponse)
async def upload_image(
    request: Request,
    file: UploadFile | None = File(None),
    identity: SessionIdentity = Depends(get_current_identity),
):
    name = await image_service.store_upload(file)
    return ImageUploadResponse(url=str(request.url_for("get_image", name=name)))


@router.get("/{name}", name="get_image")
async def get_image(name: str):
    path = storage.image_storage.path_for(name)
    if path is None:
        raise NotFoundError("Image not found")
    return FileResponse(path)
