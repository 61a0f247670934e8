"""Request principal handed to the services.

Authentication happens upstream: the gateway verifies the caller and forwards
who they are in ``X-User-*`` headers. This module only reads those headers and
checks roles.
"""

from typing import Optional

from fastapi import Depends, Header
from pydantic import ValidationError as PydanticValidationError

from errors import AuthenticationError, AuthorizationError
from schemas import Principal


def get_principal(
    x_user_id: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Principal:
    if not x_user_id:
        raise AuthenticationError()
    try:
        return Principal(
            user_id=x_user_id,
            name=x_user_name or "",
            email=x_user_email or None,
            role=(x_user_role or "user").lower(),
        )
    except PydanticValidationError:
        raise AuthenticationError("Invalid principal headers")


def require_elevated(principal: Principal = Depends(get_principal)) -> Principal:
    ensure_elevated(principal)
    return principal


def ensure_elevated(principal: Principal):
    if not principal.is_elevated:
        raise AuthorizationError(
            f"Role '{principal.role}' is not authorized to access this resource"
        )


def ensure_owner_or_elevated(principal: Principal, owner_id: str, action: str = "view"):
    if principal.user_id != owner_id and not principal.is_elevated:
        raise AuthorizationError(f"Not authorized to {action} this order")
