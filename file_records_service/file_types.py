import enum
from pathlib import PurePath


class FileType(str, enum.Enum):
    PDF = "PDF"
    DOCX = "DOCX"
    XLSX = "XLSX"
    IMAGE = "Image"
    OTHER = "Other"


EXTENSION_FILE_TYPES = {
    ".pdf": FileType.PDF,
    ".doc": FileType.DOCX,
    ".docx": FileType.DOCX,
    ".xls": FileType.XLSX,
    ".xlsx": FileType.XLSX,
    ".jpg": FileType.IMAGE,
    ".jpeg": FileType.IMAGE,
    ".png": FileType.IMAGE,
    ".gif": FileType.IMAGE,
    ".bmp": FileType.IMAGE,
    ".webp": FileType.IMAGE,
}

WILDCARD_FILE_TYPE = "All"


def file_type_choices():
    return [file_type.value for file_type in FileType]


def classify(filename: str) -> FileType:
    """Derive the record's file type from the extension of its stored name."""
    suffix = PurePath(filename or "").suffix.lower()
    return EXTENSION_FILE_TYPES.get(suffix, FileType.OTHER)


def parse_file_type(value: str) -> FileType:
    for file_type in FileType:
        if file_type.value.lower() == value.strip().lower():
            return file_type
    raise ValueError(f"Unknown file type '{value}'")


def format_file_size(size_bytes) -> str:
    if not size_bytes:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    index = 0
    while size_bytes >= 1024 ** (index + 1) and index < len(units) - 1:
        index += 1
    value = round(size_bytes / 1024 ** index, 2)
    return f"{value:g} {units[index]}"
