"""create video_jobs and videos

Revision ID: a1c4e2f07b93
Revises:
Create Date: 2026-10-19 09:12:41.508211

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1c4e2f07b93"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "video_jobs",
        sa.Column("job_id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("owner_id", sa.String(length=128), nullable=False),

        sa.Column("external_job_id", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="queued"),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("webhook_url", sa.Text(), nullable=True),

        sa.Column("video_buffer", sa.LargeBinary(), nullable=True),
        sa.Column("video_size", sa.Integer(), nullable=True),
        sa.Column("buffer_downloaded_at", sa.DateTime(timezone=True), nullable=True),

        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

    op.create_index("ix_video_jobs_owner_id", "video_jobs", ["owner_id"])
    op.create_index("ix_video_jobs_external_job_id", "video_jobs", ["external_job_id"])
    op.create_index("ix_video_jobs_status", "video_jobs", ["status"])
    op.create_index("ix_video_jobs_created_at", "video_jobs", ["created_at"])
    # eligible-job scan: non-terminal rows ordered by staleness
    op.create_index("idx_video_jobs_last_checked", "video_jobs", ["last_checked_at"])

    op.create_table(
        "videos",
        sa.Column("video_id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column(
            "job_id",
            sa.String(length=64),
            sa.ForeignKey("video_jobs.job_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("format", sa.String(length=16), nullable=False, server_default="mp4"),
        sa.Column("duration_sec", sa.Float(), nullable=True),
        sa.Column("size_bytes", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),

        sa.UniqueConstraint("job_id", name="uq_videos_job_id"),
    )

    op.create_index("ix_videos_owner_id", "videos", ["owner_id"])
    op.create_index("idx_videos_owner_created", "videos", ["owner_id", "created_at"])


def downgrade() -> None:
    op.drop_index("idx_videos_owner_created", table_name="videos")
    op.drop_index("ix_videos_owner_id", table_name="videos")
    op.drop_table("videos")

    op.drop_index("idx_video_jobs_last_checked", table_name="video_jobs")
    op.drop_index("ix_video_jobs_created_at", table_name="video_jobs")
    op.drop_index("ix_video_jobs_status", table_name="video_jobs")
    op.drop_index("ix_video_jobs_external_job_id", table_name="video_jobs")
    op.drop_index("ix_video_jobs_owner_id", table_name="video_jobs")
    op.drop_table("video_jobs")
