import re
from typing import List, Optional

DESCRIPTION_MAX_LENGTH = 2000
REFERENCE_MAX_LENGTH = 255
PASSWORD_MIN_LENGTH = 6
LOGIN_MIN_LENGTH = 3
LOGIN_MAX_LENGTH = 50

EMAIL_PATTERN = re.compile(r"^[\w.+-]+@[\w-]+(\.[\w-]+)*\.\w{2,}$")


def validate_file_record_fields(
    description: Optional[str] = None,
    reference_number: Optional[str] = None,
    description_required: bool = True,
) -> List[str]:
    errors = []
    if description is None or not description.strip():
        if description_required:
            errors.append("Description is required")
    elif len(description.strip()) > DESCRIPTION_MAX_LENGTH:
        errors.append(f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters")
    if reference_number and len(reference_number.strip()) > REFERENCE_MAX_LENGTH:
        errors.append(f"Letter reference number cannot exceed {REFERENCE_MAX_LENGTH} characters")
    return errors


def validate_new_password(password: Optional[str]) -> List[str]:
    if not password or len(password) < PASSWORD_MIN_LENGTH:
        return [f"Password must be at least {PASSWORD_MIN_LENGTH} characters"]
    return []


def validate_registration(
    institution_id: Optional[str],
    name: Optional[str],
    email: Optional[str],
    password: Optional[str],
) -> List[str]:
    errors = []
    if not institution_id or not name or not email or not password:
        errors.append("Please provide institutionId, name, email, and password")
        return errors
    if not LOGIN_MIN_LENGTH <= len(institution_id.strip()) <= LOGIN_MAX_LENGTH:
        errors.append(f"Institution ID must be between {LOGIN_MIN_LENGTH} and {LOGIN_MAX_LENGTH} characters")
    if len(name.strip()) > 100:
        errors.append("Institution name cannot exceed 100 characters")
    if not EMAIL_PATTERN.match(email.strip()):
        errors.append("Invalid email format")
    errors.extend(validate_new_password(password))
    return errors
