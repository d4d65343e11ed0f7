import io
import os
import time
import zipfile

import pytest
from openpyxl import load_workbook

import queries, schemas
from export import (
    EXPORT_TEMP_PREFIX, PLACEHOLDER, SPREADSHEET_NAME, WORKSHEET_TITLE,
    archive_name_for, build_workbook, export_records, sweep_stale_exports,
)


@pytest.mark.parametrize("sequence, original_name, expected", [
    (1, "scan.png", "001_scan.png"),
    (7, "My Report.final.pdf", "007_My Report.final.pdf"),
    (1234, "README", "1234_README"),
])
def test_archive_name_for(sequence, original_name, expected):
    assert archive_name_for(sequence, original_name) == expected

@pytest.mark.asyncio
async def test_export_bundles_spreadsheet_and_files(db_session, storage, lifecycle, make_upload):
    await lifecycle.create("a first", make_upload("scan.png", b"first png", "image/png"), reference_number="R-1")
    await lifecycle.create("b second", make_upload("scan.png", b"second png", "image/png"), file_date="2024-06-30")
    await lifecycle.create("c third", make_upload("notes.txt", b"plain text", "text/plain"))

    bundle = await export_records(db_session, storage, schemas.FileFilters(), queries.parse_sort("description", "asc"))
    try:
        with zipfile.ZipFile(bundle.path) as zf:
            names = sorted(zf.namelist())
            assert names == [SPREADSHEET_NAME, "files/001_scan.png", "files/002_scan.png", "files/003_notes.txt"]
            assert zf.read("files/001_scan.png") == b"first png"
            assert zf.read("files/002_scan.png") == b"second png"
            workbook = load_workbook(io.BytesIO(zf.read(SPREADSHEET_NAME)))
    finally:
        os.remove(bundle.path)

    rows = list(workbook[WORKSHEET_TITLE].iter_rows(values_only=True))
    assert rows[0] == (
        "Serial Number", "Description", "File Date", "Letter Reference", "File Name", "File Type", "Upload Date & Time"
    )
    assert [row[0] for row in rows[1:]] == [1, 2, 3]
    assert rows[1][1:6] == ("a first", PLACEHOLDER, "R-1", "scan.png", "Image")
    assert rows[2][1:6] == ("b second", "2024-06-30", PLACEHOLDER, "scan.png", "Image")
    assert rows[3][5] == "Other"
    assert bundle.record_count == 3
    assert bundle.skipped == []

@pytest.mark.asyncio
async def test_export_skips_missing_blob_but_keeps_row(db_session, storage, lifecycle, make_upload):
    await lifecycle.create("kept", make_upload("kept.pdf", b"kept bytes"))
    lost = await lifecycle.create("lost", make_upload("lost.pdf", b"lost bytes"))
    storage.path_for(lost.storage_path).unlink()

    bundle = await export_records(db_session, storage, schemas.FileFilters(), queries.parse_sort("description", "asc"))
    try:
        with zipfile.ZipFile(bundle.path) as zf:
            names = zf.namelist()
            workbook = load_workbook(io.BytesIO(zf.read(SPREADSHEET_NAME)))
    finally:
        os.remove(bundle.path)

    assert "files/001_kept.pdf" in names
    assert not any(name.startswith("files/002_") for name in names)
    assert bundle.skipped == [str(lost.id)]
    assert bundle.included == ["files/001_kept.pdf"]
    descriptions = [row[1] for row in workbook[WORKSHEET_TITLE].iter_rows(min_row=2, values_only=True)]
    assert descriptions == ["kept", "lost"]

@pytest.mark.asyncio
async def test_export_honours_filters(db_session, storage, lifecycle, make_upload):
    await lifecycle.create("invoice march", make_upload("march.pdf", b"pdf"))
    await lifecycle.create("holiday photo", make_upload("beach.png", b"png", "image/png"))

    bundle = await export_records(db_session, storage, queries.parse_filters(file_type="PDF"), queries.parse_sort())
    try:
        with zipfile.ZipFile(bundle.path) as zf:
            names = zf.namelist()
    finally:
        os.remove(bundle.path)

    assert bundle.record_count == 1
    assert sorted(names) == [SPREADSHEET_NAME, "files/001_march.pdf"]

@pytest.mark.asyncio
async def test_export_of_nothing_has_header_only(db_session, storage):
    bundle = await export_records(db_session, storage, schemas.FileFilters(), queries.parse_sort())
    try:
        with zipfile.ZipFile(bundle.path) as zf:
            assert zf.namelist() == [SPREADSHEET_NAME]
            workbook = load_workbook(io.BytesIO(zf.read(SPREADSHEET_NAME)))
    finally:
        os.remove(bundle.path)
    assert workbook[WORKSHEET_TITLE].max_row == 1

def test_empty_workbook_has_styled_header():
    workbook = load_workbook(io.BytesIO(build_workbook([])))
    worksheet = workbook[WORKSHEET_TITLE]
    header = worksheet["A1"]
    assert header.value == "Serial Number"
    assert header.font.bold is True
    assert header.alignment.horizontal == "center"
    assert header.alignment.vertical == "center"
    assert worksheet.column_dimensions["B"].width == 30

def test_sweep_stale_exports_removes_only_old_archives(tmp_path):
    stale = tmp_path / f"{EXPORT_TEMP_PREFIX}abandoned.zip"
    fresh = tmp_path / f"{EXPORT_TEMP_PREFIX}in_progress.zip"
    unrelated = tmp_path / "someone_elses.zip"
    for path in (stale, fresh, unrelated):
        path.write_bytes(b"PK")
    two_hours_ago = time.time() - 2 * 60 * 60
    os.utime(stale, (two_hours_ago, two_hours_ago))
    os.utime(unrelated, (two_hours_ago, two_hours_ago))

    removed = sweep_stale_exports(str(tmp_path), max_age_seconds=60 * 60)

    assert removed == [stale.name]
    assert not stale.exists()
    assert fresh.exists()
    assert unrelated.exists()
