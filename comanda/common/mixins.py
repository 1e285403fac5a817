"""
Common mixins for multi-store models
"""
from sqlalchemy import Column, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from uuid import uuid4


class StoreMixin:
    """Mixin for multi-store models that adds store_id and ensures store isolation"""

    store_id = Column(UUID(as_uuid=True), nullable=False, index=True)


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class BaseMixin(StoreMixin, TimestampMixin):
    """Combines store and timestamp functionality for most business models"""

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4, index=True)
