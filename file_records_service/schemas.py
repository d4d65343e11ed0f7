import uuid
from datetime import date, datetime
from typing import Generic, List, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, computed_field
from pydantic.alias_generators import to_camel

from file_types import FileType, format_file_size

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None


class FileFilters(BaseModel):
    search: Optional[str] = None
    file_type: Optional[FileType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class FileSort(BaseModel):
    sort_by: Literal["uploadedAt", "description", "fileType", "fileDate"] = "uploadedAt"
    sort_order: Literal["asc", "desc"] = "desc"


class FileRecordOut(CamelModel):
    id: uuid.UUID
    description: str
    stored_name: str
    original_name: str
    storage_path: str
    file_type: FileType
    file_size_bytes: int
    mime_type: Optional[str] = None
    file_date: Optional[date] = None
    reference_number: Optional[str] = None
    uploaded_by: Optional[uuid.UUID] = None
    uploaded_at: datetime
    updated_at: Optional[datetime] = None

    @computed_field(alias="fileSizeFormatted")
    @property
    def file_size_formatted(self) -> str:
        return format_file_size(self.file_size_bytes)


class PaginationInfo(CamelModel):
    current_page: int
    total_pages: int
    total_records: int
    page_size: int
    has_next_page: bool
    has_prev_page: bool


class FileRecordPage(CamelModel):
    records: List[FileRecordOut]
    pagination: PaginationInfo
    file_types: List[str]


class FileTypeStat(CamelModel):
    type: FileType
    count: int
    total_size: int


class FileStats(CamelModel):
    total_records: int
    total_size_bytes: int
    by_file_type: List[FileTypeStat]


class SweepResult(CamelModel):
    removed: List[str]


class LoginRequest(CamelModel):
    user_id: str = ""
    password: str = ""


class InstitutionLoginRequest(CamelModel):
    institution_id: Optional[str] = None
    email: Optional[str] = None
    password: str = ""


class InstitutionRegisterRequest(CamelModel):
    institution_id: str = ""
    name: str = ""
    email: str = ""
    password: str = ""
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pin_code: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    current_password: str = ""
    new_password: str = ""


class IdentityOut(CamelModel):
    id: uuid.UUID
    kind: str
    login: str
    name: Optional[str] = None
    role: str
    is_approved: bool = True
    last_login: Optional[datetime] = None


class InstitutionOut(CamelModel):
    id: uuid.UUID
    institution_id: str
    name: str
    email: str
    role: str
    is_approved: bool
    last_login: Optional[datetime] = None


class TokenOut(CamelModel):
    token: str
    user: Union[IdentityOut, InstitutionOut]
