from datetime import datetime
import uuid

from sqlalchemy.orm import as_declarative
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import DateTime, Uuid, func


@as_declarative()
class Base:
    """UUID key and audit timestamps shared by every schedule table.

    Subclasses name their own ``__tablename__``.
    """
    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, index=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"
