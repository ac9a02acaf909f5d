"""
Identity provider integration.

Authentication happens upstream (Clerk in the original deployment); the
verified principal id reaches us in a request header and is resolved to a
document in the users collection by its ``authId``.
"""

import os
from typing import Any, Dict, Optional

from fastapi import Depends, Request
from pymongo.database import Database

from database import USERS, get_db
from exceptions import UnauthorizedError, UserNotFoundError

PRINCIPAL_HEADER = os.getenv("AUTH_PRINCIPAL_HEADER", "X-Auth-User-Id")


def get_principal(request: Request) -> Optional[str]:
    principal = request.headers.get(PRINCIPAL_HEADER, "").strip()
    return principal or None


def require_principal(principal: Optional[str] = Depends(get_principal)) -> str:
    if principal is None:
        raise UnauthorizedError()
    return principal


def get_user_by_auth_id(db: Database, auth_id: str) -> Optional[Dict[str, Any]]:
    return db[USERS].find_one({"authId": auth_id})


def get_current_user(
    principal: str = Depends(require_principal),
    db: Database = Depends(get_db),
) -> Dict[str, Any]:
    user = get_user_by_auth_id(db, principal)
    if user is None:
        raise UserNotFoundError(principal)
    return user
