"""create study files, sections and questions"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "3a7c1e9b2d40"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    tables = set(inspector.get_table_names())

    if "study_files" not in tables:
        op.create_table(
            "study_files",
            sa.Column("id", sa.String(length=64), primary_key=True),
            sa.Column("owner_id", sa.String(length=128), nullable=False),
            sa.Column("course_id", sa.String(length=64), nullable=True),
            sa.Column("original_name", sa.String(length=255), nullable=True),
            sa.Column("content_type", sa.String(length=128), nullable=True),
            sa.Column("storage_path", sa.String(length=512), nullable=True),
            sa.Column("size_bytes", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("status", sa.String(length=32), nullable=False, server_default="PENDING"),
            sa.Column("processing_phase", sa.String(length=32), nullable=True),
            sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("step_label", sa.String(length=64), nullable=True),
            sa.Column("section_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("last_event_id", sa.String(length=128), nullable=True),
            sa.Column("processing_started_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        )
        op.create_index("ix_study_files_owner_id", "study_files", ["owner_id"])
        op.create_index("ix_study_files_course_id", "study_files", ["course_id"])
        op.create_index("ix_study_files_status", "study_files", ["status"])

    if "sections" not in tables:
        op.create_table(
            "sections",
            sa.Column("id", sa.String(length=96), primary_key=True),
            sa.Column("owner_id", sa.String(length=128), nullable=False),
            sa.Column("file_id", sa.String(length=64), sa.ForeignKey("study_files.id"), nullable=False),
            sa.Column("course_id", sa.String(length=64), nullable=True),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("content_ref", sa.JSON(), nullable=False),
            sa.Column("text_blob_path", sa.String(length=512), nullable=False),
            sa.Column("est_minutes", sa.Integer(), nullable=False, server_default="15"),
            sa.Column("difficulty", sa.Integer(), nullable=False, server_default="3"),
            sa.Column("topic_tags", sa.JSON(), nullable=False),
            sa.Column("ai_status", sa.String(length=32), nullable=False, server_default="PENDING"),
            sa.Column("questions_status", sa.String(length=32), nullable=False, server_default="PENDING"),
            sa.Column("questions_count", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("questions_error_message", sa.Text(), nullable=True),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("blueprint", sa.JSON(), nullable=True),
            sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("attempt", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("retry_kind", sa.String(length=16), nullable=True),
            sa.Column("processing_started_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("analyzed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_error_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        )
        op.create_index("ix_sections_owner_id", "sections", ["owner_id"])
        op.create_index("ix_sections_file_id", "sections", ["file_id"])
        op.create_index("ix_sections_course_id", "sections", ["course_id"])
        op.create_index("ix_sections_ai_status", "sections", ["ai_status"])

    if "questions" not in tables:
        op.create_table(
            "questions",
            sa.Column("id", sa.String(length=64), primary_key=True),
            sa.Column("owner_id", sa.String(length=128), nullable=False),
            sa.Column("section_id", sa.String(length=96), sa.ForeignKey("sections.id"), nullable=False),
            sa.Column("file_id", sa.String(length=64), nullable=True),
            sa.Column("course_id", sa.String(length=64), nullable=True),
            sa.Column("type", sa.String(length=16), nullable=False, server_default="SBA"),
            sa.Column("stem", sa.Text(), nullable=False),
            sa.Column("options", sa.JSON(), nullable=False),
            sa.Column("correct_index", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("explanation", sa.JSON(), nullable=False),
            sa.Column("citations", sa.JSON(), nullable=False),
            sa.Column("citation_meta", sa.JSON(), nullable=True),
            sa.Column("topic_tags", sa.JSON(), nullable=False),
            sa.Column("difficulty", sa.Integer(), nullable=False, server_default="3"),
            sa.Column("source_ref", sa.JSON(), nullable=True),
            sa.Column("stats", sa.JSON(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        )
        op.create_index("ix_questions_owner_id", "questions", ["owner_id"])
        op.create_index("ix_questions_section_id", "questions", ["section_id"])
        op.create_index("ix_questions_file_id", "questions", ["file_id"])
        op.create_index("ix_questions_course_id", "questions", ["course_id"])


def downgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    tables = set(inspector.get_table_names())
    for table in ("questions", "sections", "study_files"):
        if table in tables:
            op.drop_table(table)
