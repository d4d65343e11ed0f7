import io
import os
import tempfile
import time
import zipfile
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import PurePath
from typing import List, Optional, Sequence

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

import crud, models, schemas
from logging_config import get_logger
from storage import BlobStorage

logger = get_logger(__name__)

EXPORT_FILENAME = "file_records_export.zip"
SPREADSHEET_NAME = "records.xlsx"
FILES_FOLDER = "files"
WORKSHEET_TITLE = "File Records"
PLACEHOLDER = "—"
EXPORT_TEMP_PREFIX = "file_records_export_"
STALE_EXPORT_SECONDS = 60 * 60

COLUMNS = [
    ("Serial Number", 15),
    ("Description", 30),
    ("File Date", 15),
    ("Letter Reference", 20),
    ("File Name", 25),
    ("File Type", 12),
    ("Upload Date & Time", 22),
]

HEADER_FONT = Font(bold=True, color="FFFFFFFF")
HEADER_FILL = PatternFill(fill_type="solid", fgColor="FF4472C4")
THIN = Side(style="thin")
CELL_BORDER = Border(top=THIN, left=THIN, bottom=THIN, right=THIN)


@dataclass
class ExportBundle:
    path: str
    record_count: int
    included: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


def archive_name_for(sequence: int, original_name: str) -> str:
    original = PurePath(original_name)
    return f"{sequence:03d}_{original.stem}{original.suffix}"


def spreadsheet_row(sequence: int, record: models.FileRecord) -> list:
    return [
        sequence,
        record.description,
        record.file_date.isoformat() if record.file_date else PLACEHOLDER,
        record.reference_number or PLACEHOLDER,
        record.original_name,
        record.file_type.value,
        record.uploaded_at.strftime("%Y-%m-%d %H:%M:%S"),
    ]


def build_workbook(records: Sequence[models.FileRecord]) -> bytes:
    workbook = Workbook()
    workbook.properties.creator = "File Management System"
    workbook.properties.created = datetime.now()
    worksheet = workbook.active
    worksheet.title = WORKSHEET_TITLE

    worksheet.append([header for header, _ in COLUMNS])
    for index, (_, width) in enumerate(COLUMNS, start=1):
        worksheet.column_dimensions[worksheet.cell(row=1, column=index).column_letter].width = width
        header_cell = worksheet.cell(row=1, column=index)
        header_cell.font = HEADER_FONT
        header_cell.fill = HEADER_FILL
        header_cell.alignment = Alignment(horizontal="center", vertical="center")

    for sequence, record in enumerate(records, start=1):
        worksheet.append(spreadsheet_row(sequence, record))
        for cell in worksheet[sequence + 1]:
            cell.alignment = Alignment(vertical="center")
            cell.border = CELL_BORDER

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def write_export_archive(records: Sequence[models.FileRecord], storage: BlobStorage, target_path: str) -> ExportBundle:
    """Write the spreadsheet plus every record's blob into a zip at target_path.

    Records whose blob is gone are listed in the spreadsheet but have no
    archive entry.
    """
    bundle = ExportBundle(path=target_path, record_count=len(records))
    with zipfile.ZipFile(target_path, 'w', zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(SPREADSHEET_NAME, build_workbook(records))
        for sequence, record in enumerate(records, start=1):
            arcname = f"{FILES_FOLDER}/{archive_name_for(sequence, record.original_name)}"
            try:
                zf.write(storage.path_for(record.storage_path), arcname=arcname)
            except FileNotFoundError:
                logger.warning(f"Export skipping record {record.id}: blob {record.storage_path} missing")
                bundle.skipped.append(str(record.id))
                continue
            bundle.included.append(arcname)
    logger.info(
        f"Export archive {target_path}: {bundle.record_count} record(s), "
        f"{len(bundle.included)} file(s), {len(bundle.skipped)} skipped"
    )
    return bundle


def sweep_stale_exports(directory: Optional[str] = None, max_age_seconds: int = STALE_EXPORT_SECONDS) -> List[str]:
    """Remove export archives left behind by downloads that never finished.

    The background removal only runs once a response completes, so a client
    that disconnects mid-stream leaves its temp zip behind.
    """
    directory = directory or tempfile.gettempdir()
    now = time.time()
    removed = []
    for entry in os.scandir(directory):
        if not (entry.is_file() and entry.name.startswith(EXPORT_TEMP_PREFIX) and entry.name.endswith(".zip")):
            continue
        try:
            if now - entry.stat().st_mtime < max_age_seconds:
                continue
            os.remove(entry.path)
        except FileNotFoundError:
            continue
        removed.append(entry.name)
    if removed:
        logger.info(f"Removed {len(removed)} stale export archive(s) from {directory}")
    return removed


async def export_records(
    db: AsyncSession,
    storage: BlobStorage,
    filters: schemas.FileFilters,
    sort: schemas.FileSort,
) -> ExportBundle:
    """Build the export zip for every record matching the filters.

    The archive is spooled to a temporary file so it can be streamed back
    without holding it in memory; the caller owns the file afterwards.
    """
    await run_in_threadpool(sweep_stale_exports)
    records = await crud.list_file_records(db, filters, sort)
    logger.info(f"Exporting {len(records)} record(s) for {filters}")
    handle, target_path = tempfile.mkstemp(suffix=".zip", prefix=EXPORT_TEMP_PREFIX)
    os.close(handle)
    try:
        return await run_in_threadpool(write_export_archive, records, storage, target_path)
    except Exception:
        os.remove(target_path)
        raise
