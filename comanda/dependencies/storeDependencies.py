from typing import Annotated
from fastapi import Depends, Request, HTTPException, status
from uuid import UUID


def get_store_id(request: Request) -> UUID:
    """Extract store_id from request state set by StoreMiddleware"""
    if not hasattr(request.state, 'store_id'):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Store context not found. Ensure X-Store-ID header is provided."
        )
    return request.state.store_id


StoreId = Annotated[UUID, Depends(get_store_id)]
