from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

import accounts, schemas
from accounts import Identity
from config import Settings
from database import get_db
from dependencies import get_current_identity, get_settings, require_admin
from logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
)


@router.post("/login", response_model=schemas.ApiResponse[schemas.TokenOut])
async def login(
    body: schemas.LoginRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    token, identity = await accounts.login_user(db, settings, body.user_id, body.password)
    return schemas.ApiResponse[schemas.TokenOut](
        message="Login successful",
        data=schemas.TokenOut(token=token, user=identity.to_schema()),
    )


@router.post("/register", response_model=schemas.ApiResponse[schemas.TokenOut], status_code=201)
async def register(
    body: schemas.InstitutionRegisterRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    token, institution = await accounts.register_institution(db, settings, body)
    return schemas.ApiResponse[schemas.TokenOut](
        message="Institution registered successfully. Please wait for approval.",
        data=schemas.TokenOut(token=token, user=schemas.InstitutionOut.model_validate(institution)),
    )


@router.post("/institution/login", response_model=schemas.ApiResponse[schemas.TokenOut])
async def institution_login(
    body: schemas.InstitutionLoginRequest,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    token, institution = await accounts.login_institution(
        db, settings, body.password, institution_id=body.institution_id, email=body.email
    )
    return schemas.ApiResponse[schemas.TokenOut](
        message="Login successful",
        data=schemas.TokenOut(token=token, user=schemas.InstitutionOut.model_validate(institution)),
    )


@router.get("/me", response_model=schemas.ApiResponse[schemas.IdentityOut])
async def get_me(identity: Identity = Depends(get_current_identity)):
    return schemas.ApiResponse[schemas.IdentityOut](data=identity.to_schema())


@router.post("/logout", response_model=schemas.ApiResponse[None])
async def logout(identity: Identity = Depends(get_current_identity)):
    # tokens are stateless; the client discards its copy
    logger.info(f"{identity.kind} '{identity.login}' logged out")
    return schemas.ApiResponse[None](message="Logged out successfully")


@router.put("/change-password", response_model=schemas.ApiResponse[None])
async def change_password(
    body: schemas.ChangePasswordRequest,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    await accounts.change_password(db, identity, body.current_password, body.new_password)
    return schemas.ApiResponse[None](message="Password changed successfully")


@router.put("/institutions/{institution_id}/approve", response_model=schemas.ApiResponse[schemas.InstitutionOut])
async def approve_institution(
    institution_id: str,
    admin: Identity = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    institution = await accounts.approve_institution(db, institution_id)
    logger.info(f"Institution '{institution.institution_id}' approved by '{admin.login}'")
    return schemas.ApiResponse[schemas.InstitutionOut](
        message="Institution approved", data=schemas.InstitutionOut.model_validate(institution)
    )
