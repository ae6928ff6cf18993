from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from pedibus.core.exceptions import AuthorizationError, ErrorCode
from pedibus.core.logger import logger
from pedibus.domain.enums.people import UserRole
from pedibus.domain.models.identity import Caller

API_KEY_NAME = "X-API-Key"
api_key_header = APIKeyHeader(name=API_KEY_NAME, auto_error=False)


async def get_api_key(request: Request, api_key_header: str = Security(api_key_header)):
    if api_key_header and api_key_header == request.app.state.settings.api_key:
        return api_key_header

    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Could not validate API KEY"
    )


async def get_current_caller(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
) -> Caller:
    """Identity is resolved upstream; behind the API key these headers are trusted."""
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing user identity headers")
    try:
        role = UserRole(x_user_role.lower())
    except ValueError:
        logger.warning(f"⚠️ Unknown role '{x_user_role}' for user {x_user_id}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user role")
    return Caller(person_id=x_user_id, role=role)


async def get_admin(caller: Caller = Depends(get_current_caller)) -> Caller:
    if not caller.is_admin:
        raise AuthorizationError("Only administrators can do this", ErrorCode.FORBIDDEN_ROLE)
    return caller
