"""initial_schema

Revision ID: 3c9e1f2a7b10
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3c9e1f2a7b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "template_categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
    )
    op.create_index("ix_template_categories_id", "template_categories", ["id"])

    op.create_table(
        "forms",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "owner_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_template", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_quiz", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("template_categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("active_version_id", sa.Integer(), nullable=True),
        sa.Column("update_window_hours", sa.Integer(), nullable=True),
        sa.Column(
            "wants_email_updates", sa.Boolean(), nullable=False, server_default=sa.true()
        ),
        sa.Column("draft_content", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_forms_id", "forms", ["id"])
    op.create_index("ix_forms_owner_id", "forms", ["owner_id"])

    op.create_table(
        "form_versions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "form_id",
            sa.Integer(),
            sa.ForeignKey("forms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("revision_id", sa.String(32), nullable=False),
        sa.Column("content", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("form_id", "revision_id", name="uq_form_versions_revision"),
    )
    op.create_index("ix_form_versions_id", "form_versions", ["id"])
    op.create_index("ix_form_versions_form_id", "form_versions", ["form_id"])

    # Zirkulärer Verweis forms -> form_versions erst nach beiden Tabellen
    with op.batch_alter_table("forms") as batch_op:
        batch_op.create_foreign_key(
            "fk_forms_active_version_id",
            "form_versions",
            ["active_version_id"],
            ["id"],
            ondelete="SET NULL",
        )

    op.create_table(
        "sections",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "form_id",
            sa.Integer(),
            sa.ForeignKey("forms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("seq_order", sa.Integer(), nullable=False),
        sa.UniqueConstraint("form_id", "seq_order", name="uq_sections_form_seq_order"),
    )
    op.create_index("ix_sections_id", "sections", ["id"])
    op.create_index("ix_sections_form_id", "sections", ["form_id"])

    op.create_table(
        "items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "form_id",
            sa.Integer(),
            sa.ForeignKey("forms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "section_id",
            sa.Integer(),
            sa.ForeignKey("sections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.UniqueConstraint("form_id", "title", name="uq_items_form_title"),
    )
    op.create_index("ix_items_id", "items", ["id"])
    op.create_index("ix_items_form_id", "items", ["form_id"])
    op.create_index("ix_items_section_id", "items", ["section_id"])

    op.create_table(
        "gradings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("point_value", sa.Float(), nullable=True),
        sa.Column("when_right", sa.Text(), nullable=True),
        sa.Column("when_wrong", sa.Text(), nullable=True),
        sa.Column("general_feedback", sa.Text(), nullable=True),
        sa.Column("answer_key", sa.JSON(), nullable=True),
        sa.Column("auto_feedback", sa.Boolean(), nullable=True),
    )
    op.create_index("ix_gradings_id", "gradings", ["id"])

    op.create_table(
        "questions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "grading_id",
            sa.Integer(),
            sa.ForeignKey("gradings.id", ondelete="SET NULL"),
            nullable=True,
        ),
    )
    op.create_index("ix_questions_id", "questions", ["id"])

    op.create_table(
        "question_items",
        sa.Column(
            "item_id",
            sa.Integer(),
            sa.ForeignKey("items.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "question_id",
            sa.Integer(),
            sa.ForeignKey("questions.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    op.create_table(
        "choice_questions",
        sa.Column(
            "question_id",
            sa.Integer(),
            sa.ForeignKey("questions.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("type", sa.String(32), nullable=True),
        sa.Column("shuffle", sa.Boolean(), nullable=True),
    )

    op.create_table(
        "images",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("url", sa.String(1024), nullable=False),
        sa.Column("alt_text", sa.String(255), nullable=True),
        sa.Column("alignment", sa.String(16), nullable=True),
        sa.Column("width", sa.Integer(), nullable=True),
    )
    op.create_index("ix_images_id", "images", ["id"])

    op.create_table(
        "options",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "question_id",
            sa.Integer(),
            sa.ForeignKey("questions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column(
            "image_id",
            sa.Integer(),
            sa.ForeignKey("images.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_other", sa.Boolean(), nullable=True),
        sa.Column("goto_action", sa.String(32), nullable=True),
    )
    op.create_index("ix_options_id", "options", ["id"])
    op.create_index("ix_options_question_id", "options", ["question_id"])

    op.create_table(
        "navigation_rules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "section_id",
            sa.Integer(),
            sa.ForeignKey("sections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "target_section_id",
            sa.Integer(),
            sa.ForeignKey("sections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("condition", sa.String(255), nullable=False),
        sa.UniqueConstraint(
            "section_id", "target_section_id", "condition", name="uq_navigation_rules"
        ),
    )
    op.create_index("ix_navigation_rules_id", "navigation_rules", ["id"])

    op.create_table(
        "form_responses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "form_id",
            sa.Integer(),
            sa.ForeignKey("forms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "version_id",
            sa.Integer(),
            sa.ForeignKey("form_versions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("responder_email", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("total_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("response_token", sa.Text(), nullable=True),
    )
    op.create_index("ix_form_responses_id", "form_responses", ["id"])
    op.create_index("ix_form_responses_form_id", "form_responses", ["form_id"])
    op.create_index("ix_form_responses_version_id", "form_responses", ["version_id"])

    op.create_table(
        "answers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "response_id",
            sa.Integer(),
            sa.ForeignKey("form_responses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "question_id",
            sa.Integer(),
            sa.ForeignKey("questions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("value", sa.JSON(), nullable=True),
        sa.Column("score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("feedback", sa.JSON(), nullable=True),
        sa.UniqueConstraint(
            "response_id", "question_id", name="uq_answers_response_question"
        ),
    )
    op.create_index("ix_answers_id", "answers", ["id"])
    op.create_index("ix_answers_response_id", "answers", ["response_id"])
    op.create_index("ix_answers_question_id", "answers", ["question_id"])

    op.create_table(
        "form_user_roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "form_id",
            sa.Integer(),
            sa.ForeignKey("forms.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role", sa.String(16), nullable=False),
        sa.UniqueConstraint("form_id", "user_id", name="uq_form_user_roles"),
    )
    op.create_index("ix_form_user_roles_id", "form_user_roles", ["id"])
    op.create_index("ix_form_user_roles_form_id", "form_user_roles", ["form_id"])
    op.create_index("ix_form_user_roles_user_id", "form_user_roles", ["user_id"])


def downgrade() -> None:
    op.drop_table("form_user_roles")
    op.drop_table("answers")
    op.drop_table("form_responses")
    op.drop_table("navigation_rules")
    op.drop_table("options")
    op.drop_table("images")
    op.drop_table("choice_questions")
    op.drop_table("question_items")
    op.drop_table("questions")
    op.drop_table("gradings")
    op.drop_table("items")
    op.drop_table("sections")
    with op.batch_alter_table("forms") as batch_op:
        batch_op.drop_constraint("fk_forms_active_version_id", type_="foreignkey")
    op.drop_table("form_versions")
    op.drop_table("forms")
    op.drop_table("template_categories")
    op.drop_table("users")
