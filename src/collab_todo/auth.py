from __future__ import annotations

from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .services import Services, get_services

_security = HTTPBasic(auto_error=False)


# PUBLIC_INTERFACE
def get_current_user_id(
    creds: Optional[HTTPBasicCredentials] = Depends(_security),
    services: Services = Depends(get_services),
) -> int:
    """
    Resolve the caller to a stable user id using HTTP Basic credentials
    (username = account email).

    Raises:
        HTTPException(401) if credentials are missing or invalid.

    Usage:
        router = APIRouter(dependencies=[Depends(get_current_user_id)])
        def handler(user_id: int = Depends(get_current_user_id)): ...
    """
    if creds is None or not creds.username or creds.password is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Basic"},
        )

    user = services.directory.authenticate(creds.username, creds.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return user["id"]
