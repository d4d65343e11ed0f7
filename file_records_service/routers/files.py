import os
from typing import Optional

from fastapi import APIRouter, UploadFile, File, Form, Depends, Query, Request
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.background import BackgroundTask
from starlette.datastructures import UploadFile as StarletteUploadFile

import queries, schemas
from accounts import Identity
from config import Settings
from database import get_db
from dependencies import get_current_identity, get_lifecycle, get_settings, get_storage, require_admin
from export import EXPORT_FILENAME, export_records
from lifecycle import FileRecordLifecycle
from logging_config import get_logger
from storage import BlobStorage

logger = get_logger(__name__)

router = APIRouter(
    prefix="/files",
    tags=["files"],
    dependencies=[Depends(get_current_identity)],
)


def record_response(record, message: Optional[str] = None) -> schemas.ApiResponse[schemas.FileRecordOut]:
    return schemas.ApiResponse[schemas.FileRecordOut](
        message=message, data=schemas.FileRecordOut.model_validate(record)
    )


@router.get("", response_model=schemas.ApiResponse[schemas.FileRecordPage])
async def list_file_records(
    search: Optional[str] = None,
    file_type: Optional[str] = Query(None, alias="fileType"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    page: Optional[str] = None,
    limit: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    filters = queries.parse_filters(search, file_type, start_date, end_date)
    sort = queries.parse_sort(sort_by, sort_order)
    page_number, page_size = queries.parse_paging(page, limit, settings)
    result = await queries.list_page(db, filters, sort, page_number, page_size)
    return schemas.ApiResponse[schemas.FileRecordPage](data=result)


@router.get("/export")
async def export_file_records(
    search: Optional[str] = None,
    file_type: Optional[str] = Query(None, alias="fileType"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    db: AsyncSession = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    filters = queries.parse_filters(search, file_type, start_date, end_date)
    sort = queries.parse_sort(sort_by, sort_order)
    bundle = await export_records(db, storage, filters, sort)
    return FileResponse(
        path=bundle.path,
        filename=EXPORT_FILENAME,
        media_type="application/zip",
        headers={
            "X-Export-Records": str(bundle.record_count),
            "X-Export-Skipped": str(len(bundle.skipped)),
        },
        background=BackgroundTask(os.remove, bundle.path),
    )


@router.get("/stats", response_model=schemas.ApiResponse[schemas.FileStats])
async def get_file_stats(db: AsyncSession = Depends(get_db)):
    stats = await queries.get_stats(db)
    return schemas.ApiResponse[schemas.FileStats](data=stats)


@router.post("/maintenance/sweep", response_model=schemas.ApiResponse[schemas.SweepResult])
async def sweep_orphan_blobs(
    admin: Identity = Depends(require_admin),
    lifecycle: FileRecordLifecycle = Depends(get_lifecycle),
):
    logger.info(f"Orphan sweep requested by '{admin.login}'")
    removed = await lifecycle.sweep_orphan_blobs()
    return schemas.ApiResponse[schemas.SweepResult](
        message=f"Removed {len(removed)} orphaned file(s)", data=schemas.SweepResult(removed=removed)
    )


@router.get("/{record_id}", response_model=schemas.ApiResponse[schemas.FileRecordOut])
async def get_file_record(record_id: str, lifecycle: FileRecordLifecycle = Depends(get_lifecycle)):
    record = await lifecycle.get(record_id)
    return record_response(record)


@router.post("", response_model=schemas.ApiResponse[schemas.FileRecordOut], status_code=201)
async def create_file_record(
    description: Optional[str] = Form(None),
    file_date: Optional[str] = Form(None, alias="fileDate"),
    reference_number: Optional[str] = Form(None, alias="letterReferenceNumber"),
    file: Optional[UploadFile] = File(None),
    identity: Identity = Depends(get_current_identity),
    lifecycle: FileRecordLifecycle = Depends(get_lifecycle),
):
    logger.info(f"Upload request from '{identity.login}' for filename: '{file.filename if file else None}'")
    try:
        record = await lifecycle.create(
            description, file, file_date=file_date, reference_number=reference_number, actor_id=identity.id
        )
    finally:
        if file is not None:
            await file.close()
    return record_response(record, "File uploaded successfully")


@router.put("/{record_id}", response_model=schemas.ApiResponse[schemas.FileRecordOut])
async def update_file_record(
    record_id: str,
    request: Request,
    lifecycle: FileRecordLifecycle = Depends(get_lifecycle),
):
    # Read the raw form: an empty fileDate/letterReferenceNumber clears the
    # field, which declared Form() parameters would turn into "not sent".
    form = await request.form()
    file = form.get("file")
    if not isinstance(file, StarletteUploadFile):
        file = None
    try:
        record = await lifecycle.update(
            record_id,
            description=_form_text(form, "description"),
            file_date=_form_text(form, "fileDate"),
            reference_number=_form_text(form, "letterReferenceNumber"),
            upload=file,
        )
    finally:
        await form.close()
    return record_response(record, "File record updated successfully")


@router.delete("/{record_id}", response_model=schemas.ApiResponse[None])
async def delete_file_record(record_id: str, lifecycle: FileRecordLifecycle = Depends(get_lifecycle)):
    await lifecycle.delete(record_id)
    return schemas.ApiResponse[None](message="File record deleted successfully")


@router.get("/{record_id}/download")
async def download_file(record_id: str, lifecycle: FileRecordLifecycle = Depends(get_lifecycle)):
    logger.info(f"Download request for record_id: {record_id}")
    target = await lifecycle.download(record_id)
    return FileResponse(path=target.path, filename=target.filename, media_type=target.media_type)


def _form_text(form, key: str) -> Optional[str]:
    value = form.get(key)
    return value if isinstance(value, str) else None
