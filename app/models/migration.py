from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base

ACTIVE_STATUSES = ("queued", "downloading")
TERMINAL_STATUSES = ("completed", "error", "cancelled")


class Migration(Base):
    __tablename__ = "migrations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    workspace_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    course_id: Mapped[str] = mapped_column(String(128), nullable=False)

    course_name: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="queued")  # queued|downloading|completed|error|cancelled
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # 0..100
    local_path: Mapped[str] = mapped_column(Text, nullable=False, default="")
    remote_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # queue-assigned id of the job currently driving this record
    job_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("workspace_id", "course_id", name="uq_migrations_workspace_course"),
    )

    def to_dict(self) -> dict:
        return {
            "workspaceId": self.workspace_id,
            "courseId": self.course_id,
            "courseName": self.course_name,
            "status": self.status,
            "progress": self.progress,
            "localPath": self.local_path,
            "remoteUrl": self.remote_url,
            "error": self.error,
            "jobId": self.job_id,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
