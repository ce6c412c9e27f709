import asyncio

from fastapi import APIRouter, File, Request, UploadFile
from fastapi.responses import FileResponse

from lanshare.discovery import build_access_url, render_qr_data_url
from lanshare.models import IncomingFile
from lanshare.services.file_service import FileService

router = APIRouter(tags=["Files"])


def _service(request: Request) -> FileService:
    return request.app.state.file_service


@router.post("/upload")
async def upload(request: Request, files: list[UploadFile] | None = File(None)):
    batch = [
        IncomingFile(
            original_name=item.filename or "",
            stream=item,
            declared_size=item.size,
            content_type=item.content_type,
        )
        for item in files or []
    ]
    try:
        outcome = await _service(request).handle_upload(batch)
    finally:
        for item in files or []:
            await item.close()

    body = {
        "success": True,
        "message": "Files uploaded successfully",
        "files": [record.to_json() for record in outcome.records],
    }
    if outcome.failures:
        body["message"] = "Some files could not be uploaded"
        body["errors"] = [failure.to_json() for failure in outcome.failures]
    return body


@router.get("/files")
async def list_files(request: Request):
    return {
        "success": True,
        "files": [record.to_json() for record in _service(request).handle_list()],
    }


@router.get("/download/{stored_name}")
async def download(request: Request, stored_name: str):
    path, record = _service(request).open_download(stored_name)
    return FileResponse(path, filename=record.original_name, media_type=record.content_type)


@router.delete("/delete/{stored_name}")
async def delete(request: Request, stored_name: str):
    await _service(request).handle_delete(stored_name)
    return {"success": True, "message": "File deleted successfully"}


@router.get("/qr")
async def qr_code(request: Request):
    settings = request.app.state.settings
    url = await asyncio.to_thread(build_access_url, settings.port, public_url=settings.public_url)
    data_url = await asyncio.to_thread(render_qr_data_url, url)
    return {"success": True, "qrCode": data_url, "url": url}
