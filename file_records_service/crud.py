import uuid as py_uuid
from datetime import datetime, time, timedelta
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import func, or_, select, delete
from sqlalchemy.ext.asyncio import AsyncSession

import models, schemas

SORT_COLUMNS = {
    "uploadedAt": models.FileRecord.uploaded_at,
    "description": models.FileRecord.description,
    "fileType": models.FileRecord.file_type,
    "fileDate": models.FileRecord.file_date,
}


def build_file_filter_conditions(filters: schemas.FileFilters) -> list:
    conditions = []
    if filters.search:
        conditions.append(models.FileRecord.description.icontains(filters.search, autoescape=True))
    if filters.file_type is not None:
        conditions.append(models.FileRecord.file_type == filters.file_type)
    if filters.start_date is not None:
        conditions.append(models.FileRecord.uploaded_at >= datetime.combine(filters.start_date, time.min))
    if filters.end_date is not None:
        # everything up to and including the last instant of end_date
        next_day = datetime.combine(filters.end_date + timedelta(days=1), time.min)
        conditions.append(models.FileRecord.uploaded_at < next_day)
    return conditions


def build_file_ordering(sort: schemas.FileSort) -> list:
    column = SORT_COLUMNS.get(sort.sort_by, models.FileRecord.uploaded_at)
    if sort.sort_order == "asc":
        return [column.asc(), models.FileRecord.id.asc()]
    return [column.desc(), models.FileRecord.id.desc()]


async def get_file_record_by_id(db: AsyncSession, record_id: py_uuid.UUID) -> Optional[models.FileRecord]:
    result = await db.execute(select(models.FileRecord).filter(models.FileRecord.id == record_id))
    return result.scalars().first()


async def create_file_record(db: AsyncSession, record: models.FileRecord) -> models.FileRecord:
    db.add(record)
    await db.commit()
    await db.refresh(record)
    return record


async def save_file_record(db: AsyncSession, record: models.FileRecord) -> models.FileRecord:
    await db.commit()
    await db.refresh(record)
    return record


async def delete_file_record(db: AsyncSession, record_id: py_uuid.UUID) -> bool:
    result = await db.execute(delete(models.FileRecord).where(models.FileRecord.id == record_id))
    await db.commit()
    return result.rowcount > 0


async def count_file_records(db: AsyncSession, filters: schemas.FileFilters) -> int:
    stmt = select(func.count()).select_from(models.FileRecord).where(*build_file_filter_conditions(filters))
    result = await db.execute(stmt)
    return result.scalar_one()


async def list_file_records(
    db: AsyncSession,
    filters: schemas.FileFilters,
    sort: schemas.FileSort,
    offset: Optional[int] = None,
    limit: Optional[int] = None,
) -> Sequence[models.FileRecord]:
    stmt = (
        select(models.FileRecord)
        .where(*build_file_filter_conditions(filters))
        .order_by(*build_file_ordering(sort))
    )
    if offset:
        stmt = stmt.offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    result = await db.execute(stmt)
    return result.scalars().all()


async def get_file_type_stats(db: AsyncSession) -> List[Tuple]:
    count = func.count(models.FileRecord.id)
    stmt = (
        select(
            models.FileRecord.file_type,
            count.label("count"),
            func.coalesce(func.sum(models.FileRecord.file_size_bytes), 0).label("total_size"),
        )
        .group_by(models.FileRecord.file_type)
        .order_by(count.desc(), models.FileRecord.file_type)
    )
    result = await db.execute(stmt)
    return result.all()


async def list_referenced_storage_paths(db: AsyncSession) -> set:
    result = await db.execute(select(models.FileRecord.storage_path))
    return set(result.scalars().all())


async def get_user_by_id(db: AsyncSession, identity_id: py_uuid.UUID) -> Optional[models.User]:
    result = await db.execute(select(models.User).filter(models.User.id == identity_id))
    return result.scalars().first()


async def get_user_by_login(db: AsyncSession, user_id: str) -> Optional[models.User]:
    result = await db.execute(select(models.User).filter(models.User.user_id == user_id))
    return result.scalars().first()


async def create_user(db: AsyncSession, user: models.User) -> models.User:
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def delete_user_by_login(db: AsyncSession, user_id: str) -> bool:
    result = await db.execute(delete(models.User).where(models.User.user_id == user_id))
    await db.commit()
    return result.rowcount > 0


async def get_institution_by_id(db: AsyncSession, identity_id: py_uuid.UUID) -> Optional[models.Institution]:
    result = await db.execute(select(models.Institution).filter(models.Institution.id == identity_id))
    return result.scalars().first()


async def get_institution_by_login(
    db: AsyncSession, institution_id: Optional[str] = None, email: Optional[str] = None
) -> Optional[models.Institution]:
    if institution_id:
        stmt = select(models.Institution).filter(models.Institution.institution_id == institution_id)
    else:
        stmt = select(models.Institution).filter(models.Institution.email == (email or "").lower())
    result = await db.execute(stmt)
    return result.scalars().first()


async def find_institution_conflict(db: AsyncSession, institution_id: str, email: str) -> Optional[models.Institution]:
    stmt = select(models.Institution).filter(
        or_(models.Institution.institution_id == institution_id, models.Institution.email == email.lower())
    )
    result = await db.execute(stmt)
    return result.scalars().first()


async def create_institution(db: AsyncSession, institution: models.Institution) -> models.Institution:
    db.add(institution)
    await db.commit()
    await db.refresh(institution)
    return institution
