import uuid
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

import crud, errors, models, validation
from config import Settings
from file_types import classify
from logging_config import get_logger
from notifier import ChangeNotifier, FileEvent
from queries import parse_filter_date
from storage import BlobStorage, clean_original_name, generate_stored_name

logger = get_logger(__name__)

RecordId = Union[uuid.UUID, str]


@dataclass
class DownloadTarget:
    path: Path
    filename: str
    media_type: Optional[str]


def has_upload(upload) -> bool:
    return upload is not None and bool(getattr(upload, "filename", None))


def parse_record_id(record_id: RecordId) -> uuid.UUID:
    if isinstance(record_id, uuid.UUID):
        return record_id
    try:
        return uuid.UUID(str(record_id))
    except ValueError:
        raise errors.NotFound(f"Resource not found with id: {record_id}")


def parse_record_date(value: Union[date, str, None]) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    return parse_filter_date(value, "file date")


def clean_reference(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


class FileRecordLifecycle:
    """Keeps file record rows and their blobs in step.

    Every successful create/update/delete leaves each row pointing at an
    existing blob. Blobs written by a failed operation are removed before
    the error propagates.
    """

    def __init__(self, db: AsyncSession, storage: BlobStorage, notifier: ChangeNotifier, settings: Settings):
        self.db = db
        self.storage = storage
        self.notifier = notifier
        self.settings = settings

    def check_upload(self, upload):
        content_type = (getattr(upload, "content_type", None) or "").split(";")[0].strip().lower()
        if content_type not in self.settings.ALLOWED_MIME_TYPES:
            raise errors.UnsupportedMediaType(f"File type '{content_type or 'unknown'}' is not allowed")
        size = getattr(upload, "size", None)
        if size is not None and size > self.settings.MAX_FILE_SIZE:
            raise errors.PayloadTooLarge(
                f"File size exceeds the maximum limit of {self.settings.MAX_FILE_SIZE // (1024 * 1024)}MB"
            )
        return content_type

    async def get(self, record_id: RecordId) -> models.FileRecord:
        record = await crud.get_file_record_by_id(self.db, parse_record_id(record_id))
        if record is None:
            logger.warning(f"File record not found: ID {record_id}")
            raise errors.NotFound("File record not found")
        return record

    async def create(
        self,
        description: Optional[str],
        upload,
        file_date: Union[date, str, None] = None,
        reference_number: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> models.FileRecord:
        problems = validation.validate_file_record_fields(description, reference_number)
        if problems:
            raise errors.ValidationError.from_errors(problems)
        if not has_upload(upload):
            raise errors.ValidationError("Please upload a file")
        parsed_date = parse_record_date(file_date)
        content_type = self.check_upload(upload)

        original_name = clean_original_name(upload.filename)
        stored_name = generate_stored_name(original_name)
        logger.info(f"Create request for '{original_name}', content_type: '{content_type}', stored as {stored_name}")
        size = await self.storage.save(upload, stored_name, self.settings.MAX_FILE_SIZE)

        record = models.FileRecord(
            description=description.strip(),
            stored_name=stored_name,
            original_name=original_name,
            storage_path=stored_name,
            file_type=classify(stored_name),
            file_size_bytes=size,
            mime_type=content_type,
            file_date=parsed_date,
            reference_number=clean_reference(reference_number),
            uploaded_by=actor_id,
        )
        try:
            record = await crud.create_file_record(self.db, record)
        except SQLAlchemyError as e:
            logger.exception(f"Error inserting file record for {stored_name}, removing blob")
            await self.db.rollback()
            await self._remove_blob_quietly(stored_name)
            raise errors.StorageError("Error uploading file") from e

        logger.info(f"Saved '{record.original_name}' (ID: {record.id}, type: {record.file_type.value})")
        await self._publish(FileEvent.created(record))
        return record

    async def update(
        self,
        record_id: RecordId,
        description: Optional[str] = None,
        file_date: Union[date, str, None] = None,
        reference_number: Optional[str] = None,
        upload=None,
    ) -> models.FileRecord:
        """Apply metadata changes and optionally swap the underlying file.

        None means "leave as is"; an empty string clears file_date and
        reference_number. A blank description never overwrites.
        """
        record = await self.get(record_id)

        new_description = description.strip() if description and description.strip() else None
        replacing = has_upload(upload)
        if new_description is None and file_date is None and reference_number is None and not replacing:
            raise errors.ValidationError("No changes provided")
        problems = validation.validate_file_record_fields(
            new_description, reference_number, description_required=False
        )
        if problems:
            raise errors.ValidationError.from_errors(problems)
        parsed_date = parse_record_date(file_date)

        new_stored_name = None
        if replacing:
            content_type = self.check_upload(upload)
            original_name = clean_original_name(upload.filename)
            new_stored_name = generate_stored_name(original_name)
            logger.info(f"Replacing file of record {record.id} with '{original_name}' stored as {new_stored_name}")
            size = await self.storage.save(upload, new_stored_name, self.settings.MAX_FILE_SIZE)

        old_storage_path = record.storage_path
        if new_description is not None:
            record.description = new_description
        if file_date is not None:
            record.file_date = parsed_date
        if reference_number is not None:
            record.reference_number = clean_reference(reference_number)
        if new_stored_name is not None:
            record.stored_name = new_stored_name
            record.original_name = original_name
            record.storage_path = new_stored_name
            record.file_type = classify(new_stored_name)
            record.file_size_bytes = size
            record.mime_type = content_type

        try:
            record = await crud.save_file_record(self.db, record)
        except StaleDataError as e:
            logger.warning(f"File record {record_id} was deleted while being updated")
            await self.db.rollback()
            if new_stored_name is not None:
                await self._remove_blob_quietly(new_stored_name)
            raise errors.NotFound("File record not found") from e
        except SQLAlchemyError as e:
            logger.exception(f"Error updating file record {record_id}")
            await self.db.rollback()
            if new_stored_name is not None:
                await self._remove_blob_quietly(new_stored_name)
            raise errors.StorageError("Error updating file record") from e

        if new_stored_name is not None:
            await self._remove_blob_quietly(old_storage_path)

        logger.info(f"Updated file record {record.id}")
        await self._publish(FileEvent.updated(record))
        return record

    async def delete(self, record_id: RecordId) -> uuid.UUID:
        record = await self.get(record_id)
        deleted_id = record.id
        storage_path = record.storage_path

        try:
            removed = await crud.delete_file_record(self.db, deleted_id)
        except SQLAlchemyError as e:
            logger.exception(f"Error deleting file record {deleted_id}")
            await self.db.rollback()
            raise errors.StorageError("Error deleting file record") from e
        if not removed:
            raise errors.NotFound("File record not found")

        await self._remove_blob_quietly(storage_path)
        logger.info(f"Deleted file record {deleted_id}")
        await self._publish(FileEvent.deleted(deleted_id))
        return deleted_id

    async def download(self, record_id: RecordId) -> DownloadTarget:
        record = await self.get(record_id)
        if not record.storage_path or not self.storage.exists(record.storage_path):
            logger.error(
                f"File for ID {record.id} found in DB (location: {record.storage_path}) "
                f"but not in storage at {self.storage.base_path}. Inconsistency!"
            )
            raise errors.NotFound("File not found on server")
        return DownloadTarget(
            path=self.storage.path_for(record.storage_path),
            filename=record.original_name,
            media_type=record.mime_type or "application/octet-stream",
        )

    async def sweep_orphan_blobs(self) -> List[str]:
        """Remove blobs that no row references, once they are old enough.

        The grace period keeps blobs of in-flight creates and replaces.
        """
        referenced = await crud.list_referenced_storage_paths(self.db)
        removed = []
        for stored_name in self.storage.iter_stored_names():
            if stored_name in referenced:
                continue
            if self.storage.age_seconds(stored_name) < self.settings.ORPHAN_GRACE_SECONDS:
                continue
            if await self._remove_blob_quietly(stored_name):
                removed.append(stored_name)
        logger.info(f"Orphan sweep removed {len(removed)} blob(s)")
        return removed

    async def _remove_blob_quietly(self, storage_path: str) -> bool:
        try:
            return await self.storage.delete(storage_path)
        except errors.StorageError:
            logger.exception(f"Failed to remove blob {storage_path}")
            return False

    async def _publish(self, event: FileEvent):
        try:
            await self.notifier.publish(event)
        except Exception:
            logger.exception(f"Failed to publish {event.event}")
