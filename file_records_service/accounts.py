import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

import jwt
from pydantic import ValidationError as PayloadValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

import crud, errors, models, schemas, validation
from config import Settings
from logging_config import get_logger
from models import utcnow
from security import create_access_token, decode_access_token, hash_password, verify_password

logger = get_logger(__name__)

USER_KIND = "user"
INSTITUTION_KIND = "institution"

Account = Union[models.User, models.Institution]


@dataclass
class Identity:
    id: uuid.UUID
    kind: str
    login: str
    name: Optional[str]
    role: str
    is_active: bool
    is_approved: bool
    last_login: Optional[datetime]
    account: Account

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @classmethod
    def from_account(cls, account: Account) -> "Identity":
        if isinstance(account, models.Institution):
            return cls(
                id=account.id,
                kind=INSTITUTION_KIND,
                login=account.institution_id,
                name=account.name,
                role=account.role,
                is_active=account.is_active,
                is_approved=account.is_approved,
                last_login=account.last_login,
                account=account,
            )
        return cls(
            id=account.id,
            kind=USER_KIND,
            login=account.user_id,
            name=account.name,
            role=account.role,
            is_active=account.is_active,
            is_approved=True,
            last_login=account.last_login,
            account=account,
        )

    def to_schema(self) -> schemas.IdentityOut:
        return schemas.IdentityOut(
            id=self.id,
            kind=self.kind,
            login=self.login,
            name=self.name,
            role=self.role,
            is_approved=self.is_approved,
            last_login=self.last_login,
        )


def _check_active(account: Account):
    if not account.is_active:
        raise errors.Forbidden("Account is deactivated. Please contact administrator.")


async def _record_login(db: AsyncSession, account: Account):
    account.last_login = utcnow()
    await db.commit()
    await db.refresh(account)


async def login_user(db: AsyncSession, settings: Settings, user_id: str, password: str):
    if not user_id or not password:
        raise errors.ValidationError("Please provide user ID and password")
    user = await crud.get_user_by_login(db, user_id.strip())
    if user is None or not verify_password(password, user.password_hash):
        logger.info(f"Failed login attempt for user '{user_id}'")
        raise errors.Unauthorized("Invalid credentials")
    _check_active(user)
    await _record_login(db, user)
    logger.info(f"User '{user.user_id}' logged in")
    identity = Identity.from_account(user)
    return create_access_token(str(user.id), USER_KIND, settings), identity


async def login_institution(
    db: AsyncSession, settings: Settings, password: str, institution_id: Optional[str] = None, email: Optional[str] = None
):
    if not password or (not institution_id and not email):
        raise errors.ValidationError("Please provide (institutionId or email) and password")
    institution = await crud.get_institution_by_login(db, institution_id=institution_id, email=email)
    if institution is None:
        raise errors.Unauthorized("Invalid credentials")
    _check_active(institution)
    if not institution.is_approved:
        raise errors.Forbidden(
            "Your institution registration is pending approval. Please wait for admin confirmation."
        )
    if not verify_password(password, institution.password_hash):
        raise errors.Unauthorized("Invalid credentials")
    await _record_login(db, institution)
    logger.info(f"Institution '{institution.institution_id}' logged in")
    return create_access_token(str(institution.id), INSTITUTION_KIND, settings), institution


async def register_institution(db: AsyncSession, settings: Settings, request: schemas.InstitutionRegisterRequest):
    problems = validation.validate_registration(request.institution_id, request.name, request.email, request.password)
    if problems:
        raise errors.ValidationError.from_errors(problems)
    institution_id = request.institution_id.strip()
    email = request.email.strip().lower()
    if await crud.find_institution_conflict(db, institution_id, email):
        raise errors.Conflict("Institution ID or email already registered")

    institution = models.Institution(
        institution_id=institution_id,
        name=request.name.strip(),
        email=email,
        password_hash=hash_password(request.password),
        contact_person=request.contact_person or "",
        phone=request.phone or "",
        address=request.address or "",
        city=request.city or "",
        state=request.state or "",
        pin_code=request.pin_code or "",
        role=INSTITUTION_KIND,
        is_active=True,
        is_approved=False,
    )
    try:
        institution = await crud.create_institution(db, institution)
    except IntegrityError as e:
        await db.rollback()
        raise errors.Conflict("Institution ID or email already registered") from e
    logger.info(f"Registered institution '{institution.institution_id}', pending approval")
    return create_access_token(str(institution.id), INSTITUTION_KIND, settings), institution


async def approve_institution(db: AsyncSession, institution_id: str) -> models.Institution:
    try:
        key = uuid.UUID(str(institution_id))
    except ValueError:
        raise errors.NotFound(f"Resource not found with id: {institution_id}")
    institution = await crud.get_institution_by_id(db, key)
    if institution is None:
        raise errors.NotFound("Institution not found")
    institution.is_approved = True
    await db.commit()
    await db.refresh(institution)
    logger.info(f"Institution '{institution.institution_id}' approved")
    return institution


async def change_password(db: AsyncSession, identity: Identity, current_password: str, new_password: str):
    if not current_password or not new_password:
        raise errors.ValidationError("Please provide current and new password")
    problems = validation.validate_new_password(new_password)
    if problems:
        raise errors.ValidationError.from_errors(problems)
    account = identity.account
    if not verify_password(current_password, account.password_hash):
        raise errors.Unauthorized("Current password is incorrect")
    account.password_hash = hash_password(new_password)
    await db.commit()
    logger.info(f"Password changed for {identity.kind} '{identity.login}'")


async def resolve_token(db: AsyncSession, settings: Settings, token: Optional[str]) -> Identity:
    if not token:
        raise errors.Unauthorized()
    try:
        payload = decode_access_token(token, settings)
        subject = uuid.UUID(payload.sub)
    except jwt.ExpiredSignatureError:
        raise errors.Unauthorized("Token expired. Please login again.")
    except (jwt.PyJWTError, PayloadValidationError, ValueError):
        raise errors.Unauthorized("Invalid token. Please login again.")

    if payload.kind == INSTITUTION_KIND:
        account = await crud.get_institution_by_id(db, subject)
    else:
        account = await crud.get_user_by_id(db, subject)
    if account is None:
        raise errors.Unauthorized("User not found. Token may be invalid.")

    identity = Identity.from_account(account)
    if not identity.is_active:
        raise errors.Forbidden("Account is deactivated. Please contact administrator.")
    if not identity.is_approved:
        raise errors.Forbidden("Your institution registration is pending approval.")
    return identity


async def seed_default_user(db: AsyncSession, user_id: str, password: str, name: str = "Default Admin") -> Optional[models.User]:
    if await crud.get_user_by_login(db, user_id):
        logger.info(f"User '{user_id}' already exists in database")
        return None
    user = models.User(
        user_id=user_id,
        password_hash=hash_password(password),
        name=name,
        role="admin",
        is_active=True,
    )
    user = await crud.create_user(db, user)
    logger.info(f"Default user '{user.user_id}' created with role {user.role}")
    return user
