import uuid
from datetime import date, datetime

import pytest
import pytest_asyncio

import crud, errors, models, queries, schemas
from file_types import FileType


def make_record(description: str, uploaded_at: datetime, file_type: FileType = FileType.PDF, size: int = 100, file_date=None):
    stored_name = f"{int(uploaded_at.timestamp() * 1000)}_{uuid.uuid4()}.bin"
    return models.FileRecord(
        description=description,
        stored_name=stored_name,
        original_name=f"{description}.bin",
        storage_path=stored_name,
        file_type=file_type,
        file_size_bytes=size,
        mime_type="application/octet-stream",
        file_date=file_date,
        uploaded_at=uploaded_at,
    )

@pytest_asyncio.fixture(scope="function")
async def add_records(db_session):
    async def _add_records(*records):
        db_session.add_all(records)
        await db_session.commit()
        return records
    return _add_records


@pytest.mark.asyncio
async def test_search_is_case_insensitive_substring(db_session, add_records):
    await add_records(
        make_record("Annual Budget 2024", datetime(2024, 1, 1, 9)),
        make_record("budget revision", datetime(2024, 1, 2, 9)),
        make_record("Meeting minutes", datetime(2024, 1, 3, 9)),
    )
    filters = queries.parse_filters(search="BUDGET")
    records, pagination = await queries.list_records(db_session, filters, queries.parse_sort())
    assert {record.description for record in records} == {"Annual Budget 2024", "budget revision"}
    assert pagination.total_records == 2

@pytest.mark.asyncio
async def test_search_treats_wildcards_literally(db_session, add_records):
    await add_records(
        make_record("Growth of 100% achieved", datetime(2024, 1, 1)),
        make_record("Growth of 1000 units", datetime(2024, 1, 2)),
        make_record("file_name with underscore", datetime(2024, 1, 3)),
        make_record("filename without", datetime(2024, 1, 4)),
    )
    percent, _ = await queries.list_records(db_session, queries.parse_filters(search="100%"), queries.parse_sort())
    underscore, _ = await queries.list_records(db_session, queries.parse_filters(search="file_name"), queries.parse_sort())
    assert [record.description for record in percent] == ["Growth of 100% achieved"]
    assert [record.description for record in underscore] == ["file_name with underscore"]

@pytest.mark.asyncio
async def test_file_type_filter_and_wildcard(db_session, add_records):
    await add_records(
        make_record("A", datetime(2024, 1, 1), FileType.PDF),
        make_record("B", datetime(2024, 1, 2), FileType.IMAGE),
        make_record("C", datetime(2024, 1, 3), FileType.IMAGE),
    )
    images, _ = await queries.list_records(db_session, queries.parse_filters(file_type="image"), queries.parse_sort())
    everything, _ = await queries.list_records(db_session, queries.parse_filters(file_type="All"), queries.parse_sort())
    assert {record.description for record in images} == {"B", "C"}
    assert len(everything) == 3

def test_unknown_file_type_is_rejected():
    with pytest.raises(errors.ValidationError, match="Unknown file type"):
        queries.parse_filters(file_type="Spreadsheet")

def test_malformed_filter_date_is_rejected():
    with pytest.raises(errors.ValidationError, match="Invalid startDate"):
        queries.parse_filters(start_date="yesterday")

@pytest.mark.asyncio
async def test_date_range_includes_whole_end_day(db_session, add_records):
    await add_records(
        make_record("last instant", datetime(2024, 1, 15, 23, 59, 59, 999000)),
        make_record("next midnight", datetime(2024, 1, 16, 0, 0, 0)),
        make_record("day before", datetime(2024, 1, 14, 23, 59, 59)),
    )
    sort = queries.parse_sort()

    on_the_day, _ = await queries.list_records(
        db_session, queries.parse_filters(start_date="2024-01-15", end_date="2024-01-15"), sort
    )
    from_next_day, _ = await queries.list_records(db_session, queries.parse_filters(start_date="2024-01-16"), sort)
    until_day_before, _ = await queries.list_records(db_session, queries.parse_filters(end_date="2024-01-14"), sort)

    assert [record.description for record in on_the_day] == ["last instant"]
    assert [record.description for record in from_next_day] == ["next midnight"]
    assert [record.description for record in until_day_before] == ["day before"]

def test_parse_filter_date_accepts_datetime_strings():
    filters = queries.parse_filters(start_date="2024-03-05T10:30:00", end_date=" ")
    assert filters.start_date == date(2024, 3, 5)
    assert filters.end_date is None

@pytest.mark.parametrize("sort_by, sort_order, expected", [
    (None, None, ("uploadedAt", "desc")),
    ("description", "asc", ("description", "asc")),
    ("fileType", "DESC", ("fileType", "desc")),
    ("storagePath", "asc", ("uploadedAt", "asc")),
    ("fileDate", "sideways", ("fileDate", "desc")),
])
def test_parse_sort_falls_back_to_defaults(sort_by, sort_order, expected):
    sort = queries.parse_sort(sort_by, sort_order)
    assert (sort.sort_by, sort.sort_order) == expected

@pytest.mark.parametrize("page, limit, expected", [
    (None, None, (1, 10)),
    ("3", "25", (3, 25)),
    ("abc", "-5", (1, 10)),
    ("0", "500", (1, 100)),
])
def test_parse_paging(page, limit, expected, test_settings):
    assert queries.parse_paging(page, limit, test_settings) == expected

@pytest.mark.asyncio
async def test_sort_by_description_ascending(db_session, add_records):
    await add_records(
        make_record("charlie", datetime(2024, 1, 1)),
        make_record("alpha", datetime(2024, 1, 2)),
        make_record("bravo", datetime(2024, 1, 3)),
    )
    records, _ = await queries.list_records(db_session, schemas.FileFilters(), queries.parse_sort("description", "asc"))
    assert [record.description for record in records] == ["alpha", "bravo", "charlie"]

@pytest.mark.asyncio
@pytest.mark.parametrize("sort_by, sort_order", [("uploadedAt", "desc"), ("description", "asc"), ("fileType", "asc")])
async def test_pages_cover_the_full_result_exactly_once(db_session, add_records, sort_by, sort_order):
    same_moment = datetime(2024, 5, 1, 12, 0, 0)
    records = [make_record("duplicate", same_moment, FileType.PDF) for _ in range(8)]
    records += [make_record(f"record {index:02d}", datetime(2024, 5, 2, index), FileType.IMAGE) for index in range(15)]
    await add_records(*records)
    filters = schemas.FileFilters()
    sort = queries.parse_sort(sort_by, sort_order)

    paged_ids = []
    page = 1
    while True:
        page_records, pagination = await queries.list_records(db_session, filters, sort, page, 5)
        paged_ids.extend(record.id for record in page_records)
        if not pagination.has_next_page:
            break
        page += 1

    full_ids = [record.id for record in await crud.list_file_records(db_session, filters, sort)]
    assert pagination.total_records == 23
    assert pagination.total_pages == 5
    assert page == 5
    assert paged_ids == full_ids
    assert len(set(paged_ids)) == 23

@pytest.mark.asyncio
async def test_empty_listing_has_zero_pages(db_session):
    page = await queries.list_page(db_session, schemas.FileFilters(), queries.parse_sort(), 1, 10)
    assert page.records == []
    assert page.pagination.total_pages == 0
    assert page.pagination.total_records == 0
    assert page.pagination.has_next_page is False
    assert page.pagination.has_prev_page is False
    assert page.file_types == ["PDF", "DOCX", "XLSX", "Image", "Other"]

@pytest.mark.asyncio
async def test_page_beyond_the_end_is_empty(db_session, add_records):
    await add_records(make_record("only", datetime(2024, 1, 1)))
    records, pagination = await queries.list_records(db_session, schemas.FileFilters(), queries.parse_sort(), 4, 10)
    assert records == []
    assert pagination.total_pages == 1
    assert pagination.has_prev_page is True
    assert pagination.has_next_page is False

@pytest.mark.asyncio
async def test_stats_group_by_file_type(db_session, add_records):
    await add_records(
        make_record("a", datetime(2024, 1, 1), FileType.IMAGE, size=10),
        make_record("b", datetime(2024, 1, 2), FileType.IMAGE, size=20),
        make_record("c", datetime(2024, 1, 3), FileType.PDF, size=5),
    )
    stats = await queries.get_stats(db_session)
    assert stats.total_records == 3
    assert stats.total_size_bytes == 35
    assert [(stat.type, stat.count, stat.total_size) for stat in stats.by_file_type] == [
        (FileType.IMAGE, 2, 30),
        (FileType.PDF, 1, 5),
    ]
