import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, BigInteger, Boolean, Date, DateTime, Enum, Text, Uuid
from sqlalchemy.orm import declarative_base

from file_types import FileType

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class FileRecord(Base):
    __tablename__ = "file_records"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    description = Column(Text, nullable=False)
    stored_name = Column(String(255), nullable=False, unique=True)
    original_name = Column(String(255), nullable=False)
    storage_path = Column(String(1000), nullable=False)
    file_type = Column(
        Enum(FileType, native_enum=False, length=16, values_callable=lambda enum_cls: [m.value for m in enum_cls]),
        nullable=False,
        default=FileType.OTHER,
        index=True,
    )
    file_size_bytes = Column(BigInteger, nullable=False, default=0)
    mime_type = Column(String(255), nullable=True)
    file_date = Column(Date, nullable=True, index=True)
    reference_number = Column(String(255), nullable=True, index=True)
    uploaded_by = Column(Uuid, nullable=True)
    uploaded_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<FileRecord(id={self.id}, name='{self.original_name}', type='{self.file_type}')>"


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String(50), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=True, unique=True)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(100), nullable=True)
    role = Column(String(16), nullable=False, default="user")
    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, user_id='{self.user_id}', role='{self.role}')>"


class Institution(Base):
    __tablename__ = "institutions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    institution_id = Column(String(50), nullable=False, unique=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    contact_person = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)
    address = Column(String(200), nullable=True)
    city = Column(String(50), nullable=True)
    state = Column(String(50), nullable=True)
    pin_code = Column(String(10), nullable=True)
    role = Column(String(16), nullable=False, default="institution")
    is_active = Column(Boolean, nullable=False, default=True)
    is_approved = Column(Boolean, nullable=False, default=False)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Institution(id={self.id}, institution_id='{self.institution_id}', approved={self.is_approved})>"
