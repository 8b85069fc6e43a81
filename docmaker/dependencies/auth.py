"""
Authentication dependencies for FastAPI routes.

Extracts user identity from the X-User-Id header (set by the frontend).
In DEV_MODE a request without the header acts as a fixed dev user and
document ownership checks are skipped.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docmaker.config import settings
from docmaker.database import get_db
from docmaker.models.database_models import Document, User
from docmaker.services.document_store import get_document

logger = logging.getLogger(__name__)

DEV_USER_ID = "dev-user-id"
DEV_USER_EMAIL = "dev@docmaker.local"


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> str:
    """Extract the authenticated user ID from the request header. Raises 401 if missing."""
    if x_user_id:
        return x_user_id
    if settings.DEV_MODE:
        return DEV_USER_ID
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Missing X-User-Id header.",
    )


async def get_or_create_user(
    user_id: str = Depends(get_current_user_id),
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
    x_user_name: Optional[str] = Header(None, alias="X-User-Name"),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Ensure the user exists in the local users table. Creates if needed."""
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        if user_id == DEV_USER_ID:
            email = DEV_USER_EMAIL
        else:
            email = x_user_email or f"{user_id}@docmaker.local"
        role = "admin" if email.lower() in settings.get_admin_emails() else "user"
        user = User(id=user_id, email=email, name=x_user_name, role=role)
        db.add(user)
        await db.flush()
        logger.info("Created new user: id=%s email=%s", user_id, user.email)

    return user


async def load_owned_document(
    document_id: Optional[str],
    user_id: str,
    db: AsyncSession,
) -> Document:
    """
    Load *document_id* and verify the caller owns it.

    Used directly by routes that receive the id in the request body.
    Raises 404 when the row is missing and 403 when it belongs to someone
    else (ownership is not enforced in DEV_MODE).
    """
    document = await get_document(db, document_id) if document_id else None
    if document is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Document {document_id} not found.",
        )
    if document.user_id != user_id and not settings.DEV_MODE:
        logger.warning(
            "User %s denied access to document %s (owner %s)",
            user_id, document_id, document.user_id,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have access to this document.",
        )
    return document


async def get_owned_document(
    document_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Document:
    """Path-parameter flavour of :func:`load_owned_document`."""
    return await load_owned_document(document_id, user_id, db)


async def require_admin(user: User = Depends(get_or_create_user)) -> str:
    """Allow only users with the admin role (any user in DEV_MODE). Returns the user id."""
    if user.role != "admin" and not settings.DEV_MODE:
        logger.warning("User %s denied access to admin routes (role %s)", user.id, user.role)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required.",
        )
    return user.id
