"""create content autopilot tables

Revision ID: 0001_content_autopilot_schema
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_content_autopilot_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "ideas",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("source", sa.String(length=512), nullable=True),
        sa.Column("source_message_id", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="new"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source_message_id", name="uq_ideas_source_message_id"),
    )
    op.create_check_constraint("ck_ideas_status_values", "ideas", "status IN ('new', 'generating', 'drafted')")
    op.create_index("ix_ideas_status", "ideas", ["status"], unique=False)

    op.create_table(
        "content_pieces",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("idea_id", sa.Uuid(), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("queue_position", sa.Integer(), nullable=True),
        sa.Column("external_id", sa.String(length=255), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["idea_id"], ["ideas.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_check_constraint(
        "ck_content_pieces_status_values",
        "content_pieces",
        "status IN ('draft', 'queued', 'published', 'failed')",
    )
    op.create_check_constraint("ck_content_pieces_type_values", "content_pieces", "type IN ('linkedin', 'blog')")
    op.create_check_constraint(
        "ck_content_pieces_queue_position_iff_queued",
        "content_pieces",
        "(status = 'queued') = (queue_position IS NOT NULL)",
    )
    op.create_check_constraint(
        "ck_content_pieces_queue_position_positive",
        "content_pieces",
        "queue_position IS NULL OR queue_position >= 1",
    )
    op.create_index("ix_content_pieces_idea_id", "content_pieces", ["idea_id"], unique=False)
    op.create_index(
        "ix_content_pieces_type_status_position",
        "content_pieces",
        ["type", "status", "queue_position"],
        unique=False,
    )

    op.create_table(
        "settings",
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("key"),
    )
    op.bulk_insert(
        sa.table("settings", sa.column("key", sa.String), sa.column("value", sa.Text)),
        [
            {"key": "linkedin_posting_enabled", "value": "false"},
            {"key": "blog_posting_enabled", "value": "false"},
        ],
    )

    op.create_table(
        "blog_posts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("content_piece_id", sa.Uuid(), nullable=True),
        sa.Column("slug", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("excerpt", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["content_piece_id"], ["content_pieces.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("slug", name="uq_blog_posts_slug"),
    )
    op.create_index("ix_blog_posts_content_piece_id", "blog_posts", ["content_piece_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_blog_posts_content_piece_id", table_name="blog_posts")
    op.drop_table("blog_posts")
    op.drop_table("settings")
    op.drop_index("ix_content_pieces_type_status_position", table_name="content_pieces")
    op.drop_index("ix_content_pieces_idea_id", table_name="content_pieces")
    op.drop_table("content_pieces")
    op.drop_index("ix_ideas_status", table_name="ideas")
    op.drop_table("ideas")
