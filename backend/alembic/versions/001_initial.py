"""Initial schema - revisions, files, versions, published sites.

Revision ID: 001
Revises:
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Revisions: the unique constraint is the only arbiter of concurrent allocation
    op.create_table(
        "site_revisions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("project_id", sa.String(32), nullable=False),
        sa.Column("revision_number", sa.Integer, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("project_id", "revision_number", name="uq_site_revisions_project_number"),
    )
    op.create_index("ix_site_revisions_project_id", "site_revisions", ["project_id"])
    op.create_index("ix_site_revisions_user_id", "site_revisions", ["user_id"])

    # File identities
    op.create_table(
        "site_files",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("project_id", sa.String(32), nullable=False),
        sa.Column("path", sa.String(512), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="other"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("project_id", "path", name="uq_site_files_project_path"),
    )
    op.create_index("ix_site_files_project_id", "site_files", ["project_id"])

    # Append-only content
    op.create_table(
        "site_file_versions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("file_id", sa.Integer, sa.ForeignKey("site_files.id"), nullable=False),
        sa.Column("revision_id", sa.Integer, sa.ForeignKey("site_revisions.id"), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_site_file_versions_file_id", "site_file_versions", ["file_id"])
    op.create_index("ix_site_file_versions_revision_id", "site_file_versions", ["revision_id"])

    # Published sites
    op.create_table(
        "published_sites",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("public_id", sa.String(32), nullable=False, unique=True),
        sa.Column("project_id", sa.String(32), nullable=False, unique=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("revision_number", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_published_sites_user_id", "published_sites", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_published_sites_user_id")
    op.drop_table("published_sites")
    op.drop_index("ix_site_file_versions_revision_id")
    op.drop_index("ix_site_file_versions_file_id")
    op.drop_table("site_file_versions")
    op.drop_index("ix_site_files_project_id")
    op.drop_table("site_files")
    op.drop_index("ix_site_revisions_user_id")
    op.drop_index("ix_site_revisions_project_id")
    op.drop_table("site_revisions")
