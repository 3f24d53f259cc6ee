import logging

from fastapi import APIRouter, HTTPException, Response, status
from pydantic import BaseModel, Field

from autopilot.core.config import settings
from autopilot.core.security import create_operator_token, secrets_match

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(BaseModel):
    password: str = Field(min_length=1)


@router.post("/login", status_code=status.HTTP_200_OK)
def login(payload: LoginRequest, response: Response) -> dict:
    if not secrets_match(payload.password, settings.operator_password):
        logger.warning("operator_login_failed")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid password")

    access_token = create_operator_token()
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=access_token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        max_age=settings.jwt_access_token_expire_minutes * 60,
        path="/",
    )
    logger.info("operator_login_succeeded")
    return {"success": True, "access_token": access_token, "token_type": "bearer"}


@router.post("/logout", status_code=status.HTTP_200_OK)
def logout(response: Response) -> dict:
    response.delete_cookie(key=settings.auth_cookie_name, path="/")
    return {"success": True}
