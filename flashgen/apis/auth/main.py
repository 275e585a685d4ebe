from fastapi import APIRouter
from fastapi.responses import JSONResponse

from flashgen.core.config import settings
from flashgen.modules.auth import (
    fastapi_users,
    auth_backend,
    get_jwt_strategy,
    UserRead,
    UserCreate,
    UserUpdate,
)


router = APIRouter()


@router.get("/.well-known/jwks.json", tags=["auth"])
async def jwks():
    """JWKS endpoint for public key distribution"""
    return JSONResponse(content=get_jwt_strategy().get_jwks())


router.include_router(
    fastapi_users.get_auth_router(auth_backend),
    prefix=f"{settings.app.api_prefix}/auth",
    tags=["auth"],
)

router.include_router(
    fastapi_users.get_register_router(UserRead, UserCreate),
    prefix=f"{settings.app.api_prefix}/auth",
    tags=["auth"],
)

router.include_router(
    fastapi_users.get_reset_password_router(),
    prefix=f"{settings.app.api_prefix}/auth",
    tags=["auth"],
)

router.include_router(
    fastapi_users.get_users_router(UserRead, UserUpdate),
    prefix=f"{settings.app.api_prefix}/users",
    tags=["users"],
)
