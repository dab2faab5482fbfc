"""create healthvault schema

Revision ID: 0001_create_healthvault_schema
Revises:
Create Date: 2026-10-17

"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_create_healthvault_schema"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    ]


def _owner() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.Uuid(as_uuid=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "family_members",
        *_owner(),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("relationship", sa.String(length=30), nullable=False),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("gender", sa.String(length=30), nullable=True),
        sa.Column("phone_number", sa.String(length=30), nullable=True),
        sa.Column("photo_url", sa.String(length=1024), nullable=True),
        sa.Column("medical_notes", sa.Text(), nullable=True),
        sa.Column("emergency_contact_name", sa.String(length=255), nullable=True),
        sa.Column("emergency_contact_phone", sa.String(length=30), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_family_members")),
    )
    op.create_index(
        op.f("ix_family_members_user_id"), "family_members", ["user_id"], unique=False
    )

    op.create_table(
        "reports",
        *_owner(),
        sa.Column("family_member_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("report_type", sa.String(length=50), nullable=False),
        sa.Column("report_date", sa.Date(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("physician_name", sa.String(length=255), nullable=True),
        sa.Column("facility_name", sa.String(length=255), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("is_critical", sa.Boolean(), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=True),
        sa.Column("file_path", sa.String(length=1024), nullable=True),
        sa.Column("file_size", sa.BigInteger(), nullable=True),
        sa.Column("content_mime_type", sa.String(length=255), nullable=True),
        sa.Column("checksum_sha256", sa.String(length=64), nullable=True),
        sa.Column("parsing_status", sa.String(length=20), nullable=False),
        sa.Column("processing_phase", sa.String(length=50), nullable=True),
        sa.Column("progress_percentage", sa.Integer(), nullable=False),
        sa.Column("processing_error", sa.Text(), nullable=True),
        sa.Column("processing_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("extracted_text", sa.Text(), nullable=True),
        sa.Column("parsed_data", sa.JSON(), nullable=True),
        sa.Column("parsing_confidence", sa.Float(), nullable=True),
        sa.Column("extraction_confidence", sa.Float(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "parsing_status IN ('pending', 'processing', 'completed', 'failed')",
            name=op.f("ck_reports_reports_parsing_status"),
        ),
        sa.CheckConstraint(
            "progress_percentage >= 0 AND progress_percentage <= 100",
            name=op.f("ck_reports_reports_progress_range"),
        ),
        sa.CheckConstraint(
            "(file_path IS NULL) OR (file_path NOT LIKE '/%' AND file_path NOT LIKE '%..%')",
            name=op.f("ck_reports_reports_file_path_relative"),
        ),
        sa.ForeignKeyConstraint(
            ["family_member_id"],
            ["family_members.id"],
            name=op.f("fk_reports_family_member_id_family_members"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_reports")),
    )
    op.create_index(op.f("ix_reports_user_id"), "reports", ["user_id"], unique=False)
    op.create_index(
        op.f("ix_reports_family_member_id"), "reports", ["family_member_id"], unique=False
    )
    op.create_index(
        op.f("ix_reports_parsing_status"), "reports", ["parsing_status"], unique=False
    )
    # Keyset pagination walks (created_at DESC, id DESC) per user.
    op.create_index(
        "ix_reports_user_id_created_at_id",
        "reports",
        ["user_id", "created_at", "id"],
        unique=False,
    )

    op.create_table(
        "prescriptions",
        *_owner(),
        sa.Column("family_member_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("report_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("medication_name", sa.String(length=255), nullable=False),
        sa.Column("dosage", sa.String(length=100), nullable=True),
        sa.Column("frequency", sa.String(length=100), nullable=True),
        sa.Column("duration", sa.String(length=100), nullable=True),
        sa.Column("prescribing_doctor", sa.String(length=255), nullable=True),
        sa.Column("pharmacy", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["family_member_id"],
            ["family_members.id"],
            name=op.f("fk_prescriptions_family_member_id_family_members"),
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["report_id"],
            ["reports.id"],
            name=op.f("fk_prescriptions_report_id_reports"),
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_prescriptions")),
    )
    op.create_index(op.f("ix_prescriptions_user_id"), "prescriptions", ["user_id"], unique=False)
    op.create_index(
        op.f("ix_prescriptions_report_id"), "prescriptions", ["report_id"], unique=False
    )

    op.create_table(
        "doctor_notes",
        *_owner(),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("note_type", sa.String(length=50), nullable=False),
        sa.Column("note_date", sa.Date(), nullable=False),
        sa.Column("physician_name", sa.String(length=255), nullable=True),
        sa.Column("facility_name", sa.String(length=255), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("related_report_ids", sa.JSON(), nullable=False),
        sa.Column("attached_file_url", sa.String(length=1024), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_doctor_notes")),
    )
    op.create_index(op.f("ix_doctor_notes_user_id"), "doctor_notes", ["user_id"], unique=False)

    op.create_table(
        "summaries",
        *_owner(),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("summary_type", sa.String(length=30), nullable=False),
        sa.Column("content", sa.JSON(), nullable=False),
        sa.Column("source_report_ids", sa.JSON(), nullable=False),
        sa.Column(
            "generated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("ai_model_used", sa.String(length=100), nullable=True),
        sa.Column("confidence_score", sa.Float(), nullable=True),
        sa.Column("is_pinned", sa.Boolean(), nullable=False),
        sa.Column("user_rating", sa.Integer(), nullable=True),
        sa.Column("user_feedback", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "(user_rating IS NULL) OR (user_rating >= 1 AND user_rating <= 5)",
            name=op.f("ck_summaries_summaries_rating_range"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_summaries")),
    )
    op.create_index(op.f("ix_summaries_user_id"), "summaries", ["user_id"], unique=False)
    op.create_index(
        op.f("ix_summaries_generated_at"), "summaries", ["generated_at"], unique=False
    )

    op.create_table(
        "emergency_contacts",
        *_owner(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("relationship", sa.String(length=50), nullable=False),
        sa.Column("phone_number", sa.String(length=30), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_emergency_contacts")),
    )
    op.create_index(
        op.f("ix_emergency_contacts_user_id"), "emergency_contacts", ["user_id"], unique=False
    )

    op.create_table(
        "sos_activations",
        *_owner(),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column(
            "triggered_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("location_data", sa.JSON(), nullable=True),
        sa.Column("sms_sent", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_sos_activations")),
    )
    op.create_index(
        op.f("ix_sos_activations_user_id"), "sos_activations", ["user_id"], unique=False
    )

    op.create_table(
        "notifications",
        *_owner(),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("category", sa.String(length=20), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("action_url", sa.String(length=1024), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_notifications")),
    )
    op.create_index(
        op.f("ix_notifications_user_id"), "notifications", ["user_id"], unique=False
    )

    op.create_table(
        "subscription_plans",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("display_name", sa.String(length=100), nullable=False),
        sa.Column("price_monthly", sa.Integer(), nullable=False),
        sa.Column("features", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_subscription_plans")),
        sa.UniqueConstraint("name", name=op.f("uq_subscription_plans_name")),
    )

    op.create_table(
        "user_subscriptions",
        *_owner(),
        sa.Column("subscription_plan_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("current_period_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["subscription_plan_id"],
            ["subscription_plans.id"],
            name=op.f("fk_user_subscriptions_subscription_plan_id_subscription_plans"),
            ondelete="RESTRICT",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_user_subscriptions")),
        sa.UniqueConstraint("user_id", name=op.f("uq_user_subscriptions_user_id")),
    )

    op.create_table(
        "usage_tracking",
        *_owner(),
        sa.Column("usage_type", sa.String(length=30), nullable=False),
        sa.Column("usage_count", sa.Integer(), nullable=False),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_usage_tracking")),
        sa.UniqueConstraint(
            "user_id",
            "usage_type",
            "period_start",
            name="uq_usage_tracking_user_type_period",
        ),
    )
    op.create_index(
        op.f("ix_usage_tracking_user_id"), "usage_tracking", ["user_id"], unique=False
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("user_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("resource_type", sa.String(length=50), nullable=False),
        sa.Column("resource_id", sa.String(length=64), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_audit_logs")),
    )
    op.create_index(op.f("ix_audit_logs_user_id"), "audit_logs", ["user_id"], unique=False)
    op.create_index(op.f("ix_audit_logs_action"), "audit_logs", ["action"], unique=False)
    op.create_index(
        op.f("ix_audit_logs_created_at"), "audit_logs", ["created_at"], unique=False
    )


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("usage_tracking")
    op.drop_table("user_subscriptions")
    op.drop_table("subscription_plans")
    op.drop_table("notifications")
    op.drop_table("sos_activations")
    op.drop_table("emergency_contacts")
    op.drop_table("summaries")
    op.drop_table("doctor_notes")
    op.drop_table("prescriptions")
    op.drop_table("reports")
    op.drop_table("family_members")
