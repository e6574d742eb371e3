from fastapi import APIRouter, File, Depends, UploadFile

from middleware import require_admin, require_requester, require_roles
from services.storage import save_upload, list_uploads, upload_path, UPLOAD_URL_PREFIX

router = APIRouter(tags=["Uploads"])

REQUEST_ATTACHMENT_MAX_MB = 5


@router.post("/upload", status_code=201)
async def upload_request_attachment(file: UploadFile = File(...), current_user: dict = Depends(require_requester)):
    stored = await save_upload(file, prefix="medical-report", max_mb=REQUEST_ATTACHMENT_MAX_MB)
    return {
        "message": "File uploaded successfully",
        "url": stored["url"],
        "filename": stored["stored_name"],
        "original_name": stored["file_name"],
        "size": stored["file_size"],
    }


@router.get("/files")
async def get_uploaded_files(current_user: dict = Depends(require_admin)):
    files = list_uploads()
    return {"count": len(files), "files": files}


@router.get("/files/{filename}")
async def get_file_info(filename: str, current_user: dict = Depends(require_roles("admin", "hospital", "external"))):
    path = upload_path(filename)
    if not path.is_file():
        return {"filename": filename, "exists": False}
    return {
        "filename": path.name,
        "exists": True,
        "size": path.stat().st_size,
        "url": f"{UPLOAD_URL_PREFIX}/{path.name}",
    }
