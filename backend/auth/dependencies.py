"""
FastAPI dependency that resolves the owning identity of a request.

Authentication itself happens upstream (an API gateway or identity-aware
proxy). By the time a request reaches this service the caller's identity
is carried in the X-User-Id header and is trusted as-is. Every operation
of the hierarchy core is scoped to that identity.
"""

import logging
from typing import Optional

from fastapi import HTTPException, status, Header

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"


def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias=USER_ID_HEADER),
) -> str:
    """
    Return the owning identity from the X-User-Id header.

    Raises:
        HTTPException: 401 if the header is missing or blank

    Example:
        @app.get("/api/organizations")
        def list_organizations(owner_id: str = Depends(get_current_user_id)):
            ...
    """
    if x_user_id is None or not x_user_id.strip():
        logger.info(f"Rejected request without {USER_ID_HEADER} header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )

    return x_user_id.strip()
