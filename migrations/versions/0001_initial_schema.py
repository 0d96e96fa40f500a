"""Initial schema: sources, chapters, scans, changes

Revision ID: 0001
Revises: None
Create Date: 2026-01-01 00:00:00
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | None = None
depends_on: str | None = None


def _table_exists(name: str) -> bool:
    """Check whether a table already exists in the database."""
    conn = op.get_bind()
    result = conn.execute(
        sa.text("SELECT 1 FROM sqlite_master WHERE type='table' AND name=:n"),
        {"n": name},
    )
    return result.fetchone() is not None


def upgrade() -> None:
    # Guarded so a DB created by SQLModel.metadata.create_all() can be
    # stamped and upgraded without errors.

    if not _table_exists("sources"):
        op.create_table(
            "sources",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("name", sa.String(), nullable=False),
            sa.Column("author", sa.String(), nullable=False, server_default=""),
            sa.Column("url", sa.String(), nullable=False),
            sa.Column("image_url", sa.String(), nullable=False, server_default=""),
            sa.Column("disabled", sa.Boolean(), nullable=False, server_default="0"),
            sa.Column("import_settings", sa.JSON(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
        )

    if not _table_exists("chapters"):
        op.create_table(
            "chapters",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("source_id", sa.String(), sa.ForeignKey("sources.id"), nullable=False),
            sa.Column("title", sa.String(), nullable=False),
            sa.Column("url", sa.String(), nullable=True),
            sa.Column("position", sa.Integer(), nullable=False),
            sa.Column("fingerprint", sa.String(), nullable=False),
            sa.Column("removed", sa.Boolean(), nullable=False, server_default="0"),
        )
        op.create_index("ix_chapters_source_id", "chapters", ["source_id"])

    if not _table_exists("scans"):
        op.create_table(
            "scans",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("source_id", sa.String(), sa.ForeignKey("sources.id"), nullable=False),
            sa.Column("date", sa.DateTime(), nullable=False),
            sa.Column("total", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("new_ids", sa.JSON(), nullable=False),
            sa.Column("updated_ids", sa.JSON(), nullable=False),
            sa.Column("removed_ids", sa.JSON(), nullable=False),
        )
        op.create_index("ix_scans_source_id", "scans", ["source_id"])

    if not _table_exists("changes"):
        op.create_table(
            "changes",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("scan_id", sa.Integer(), sa.ForeignKey("scans.id"), nullable=False),
            sa.Column("source_id", sa.String(), sa.ForeignKey("sources.id"), nullable=False),
            sa.Column("kind", sa.String(), nullable=False),
            sa.Column("chapter_id", sa.String(), nullable=False),
            sa.Column("old_title", sa.String(), nullable=True),
            sa.Column("new_title", sa.String(), nullable=True),
            sa.Column("old_url", sa.String(), nullable=True),
            sa.Column("new_url", sa.String(), nullable=True),
        )
        op.create_index("ix_changes_scan_id", "changes", ["scan_id"])
        op.create_index("ix_changes_source_id", "changes", ["source_id"])


def downgrade() -> None:
    # Reverse FK order: changes → scans → chapters → sources.
    op.drop_table("changes")
    op.drop_table("scans")
    op.drop_table("chapters")
    op.drop_table("sources")
