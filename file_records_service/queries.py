import math
from datetime import date, datetime
from typing import Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

import crud, errors, models, schemas
from config import Settings
from file_types import WILDCARD_FILE_TYPE, file_type_choices, parse_file_type
from logging_config import get_logger

logger = get_logger(__name__)


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def parse_positive_int(value, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def parse_filter_date(value: Optional[str], field: str) -> Optional[date]:
    if _blank(value):
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        raise errors.ValidationError(f"Invalid {field} '{value}', expected YYYY-MM-DD")


def parse_filters(
    search: Optional[str] = None,
    file_type: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> schemas.FileFilters:
    parsed_type = None
    if not _blank(file_type) and file_type.strip().lower() != WILDCARD_FILE_TYPE.lower():
        try:
            parsed_type = parse_file_type(file_type)
        except ValueError as e:
            raise errors.ValidationError(str(e))
    return schemas.FileFilters(
        search=None if _blank(search) else search.strip(),
        file_type=parsed_type,
        start_date=parse_filter_date(start_date, "startDate"),
        end_date=parse_filter_date(end_date, "endDate"),
    )


def parse_sort(sort_by: Optional[str] = None, sort_order: Optional[str] = None) -> schemas.FileSort:
    if sort_by not in crud.SORT_COLUMNS:
        sort_by = "uploadedAt"
    return schemas.FileSort(sort_by=sort_by, sort_order="asc" if sort_order == "asc" else "desc")


def parse_paging(page, limit, settings: Settings) -> Tuple[int, int]:
    page_number = parse_positive_int(page, 1)
    page_size = min(parse_positive_int(limit, settings.DEFAULT_PAGE_SIZE), settings.MAX_PAGE_SIZE)
    return page_number, page_size


async def list_records(
    db: AsyncSession,
    filters: schemas.FileFilters,
    sort: schemas.FileSort,
    page: int = 1,
    page_size: int = 10,
) -> Tuple[Sequence[models.FileRecord], schemas.PaginationInfo]:
    total = await crud.count_file_records(db, filters)
    records = await crud.list_file_records(db, filters, sort, offset=(page - 1) * page_size, limit=page_size)
    total_pages = math.ceil(total / page_size)
    logger.debug(f"Listed page {page}/{total_pages} ({len(records)} of {total} records) for {filters}")
    pagination = schemas.PaginationInfo(
        current_page=page,
        total_pages=total_pages,
        total_records=total,
        page_size=page_size,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )
    return records, pagination


async def list_page(
    db: AsyncSession,
    filters: schemas.FileFilters,
    sort: schemas.FileSort,
    page: int = 1,
    page_size: int = 10,
) -> schemas.FileRecordPage:
    records, pagination = await list_records(db, filters, sort, page, page_size)
    return schemas.FileRecordPage(
        records=[schemas.FileRecordOut.model_validate(record) for record in records],
        pagination=pagination,
        file_types=file_type_choices(),
    )


async def get_stats(db: AsyncSession) -> schemas.FileStats:
    rows = await crud.get_file_type_stats(db)
    by_type = [
        schemas.FileTypeStat(type=file_type, count=count, total_size=int(total_size or 0))
        for file_type, count, total_size in rows
    ]
    return schemas.FileStats(
        total_records=sum(stat.count for stat in by_type),
        total_size_bytes=sum(stat.total_size for stat in by_type),
        by_file_type=by_type,
    )
