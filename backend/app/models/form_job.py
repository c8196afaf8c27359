"""FormJob model — one requested IRS form rendered by the external worker."""

import uuid

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, TimestampMixin, UUIDPrimaryKeyMixin

JOB_QUEUED = "queued"
JOB_PROCESSING = "processing"
JOB_DONE = "done"
JOB_ERROR = "error"


class FormJob(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A Schedule C or 1099 generation request and its result."""

    __tablename__ = "form_jobs"
    __table_args__ = (Index("ix_form_jobs_user_id_created_at", "user_id", "created_at"),)

    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    form_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=JOB_QUEUED)
    result_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<FormJob id={self.id} type={self.form_type!r} status={self.status!r}>"
