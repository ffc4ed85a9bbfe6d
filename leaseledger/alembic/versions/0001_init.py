"""init lease ledger schema

Revision ID: 0001_init
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


MISMATCH_VIEW = """
CREATE VIEW lease_unit_status_mismatches AS
SELECT l.id AS lease_id, u.id AS unit_id, u.name AS unit_name,
       l.status AS lease_status, u.status AS unit_status,
       'lease_active_unit_not_leased' AS issue_type,
       l.start_date AS start_date, l.end_date AS end_date
  FROM leases l
  JOIN units u ON u.id = l.unit_id
 WHERE l.status = 'active' AND u.status <> 'LEASED'
UNION ALL
SELECT NULL, u.id, u.name, NULL, u.status,
       'unit_leased_no_active_lease', NULL, NULL
  FROM units u
 WHERE u.status = 'LEASED'
   AND NOT EXISTS (SELECT 1 FROM leases l WHERE l.unit_id = u.id AND l.status = 'active')
"""


def upgrade():
    op.create_table(
        "app_users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=200), nullable=False),
        sa.Column("full_name", sa.String(length=160), nullable=True),
        sa.Column("phone", sa.String(length=40), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("email", name="uq_app_users_email"),
    )
    op.create_index("ix_app_users_email", "app_users", ["email"])

    op.create_table(
        "user_roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("app_users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
        sa.CheckConstraint("role IN ('admin', 'owner', 'tenant', 'ops')", name="ck_user_roles_role"),
    )
    op.create_index("ix_user_roles_user_id", "user_roles", ["user_id"])

    op.create_table(
        "properties",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("owner_id", sa.String(length=36), sa.ForeignKey("app_users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("address", sa.String(length=255), nullable=False),
        sa.Column("city", sa.String(length=120), nullable=False),
        sa.Column("state", sa.String(length=2), nullable=False),
        sa.Column("zip_code", sa.String(length=10), nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False, server_default="residential"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("type IN ('residential', 'commercial', 'industrial')", name="ck_properties_type"),
        sa.CheckConstraint("status IN ('active', 'inactive', 'maintenance')", name="ck_properties_status"),
    )
    op.create_index("ix_properties_owner_id", "properties", ["owner_id"])

    op.create_table(
        "units",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("property_id", sa.String(length=36), sa.ForeignKey("properties.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=80), nullable=False),
        sa.Column("rent_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("bedrooms", sa.Integer(), nullable=True),
        sa.Column("bathrooms", sa.Integer(), nullable=True),
        sa.Column("square_feet", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="AVAILABLE"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("status IN ('AVAILABLE', 'HOLD', 'LEASED', 'INACTIVE')", name="ck_units_status"),
        sa.CheckConstraint("rent_amount > 0", name="ck_units_rent_positive"),
    )
    op.create_index("ix_units_property_id", "units", ["property_id"])
    op.create_index("ix_units_status", "units", ["status"])

    op.create_table(
        "holds",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("unit_id", sa.String(length=36), sa.ForeignKey("units.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("unit_id", name="uq_holds_unit"),
    )
    op.create_index("ix_holds_user_id", "holds", ["user_id"])
    op.create_index("ix_holds_expires_at", "holds", ["expires_at"])

    op.create_table(
        "tenants",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("profile_id", sa.String(length=36), sa.ForeignKey("app_users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=200), nullable=True),
        sa.Column("phone", sa.String(length=40), nullable=True),
        sa.Column("occupation", sa.String(length=120), nullable=True),
        sa.Column("annual_income", sa.Numeric(12, 2), nullable=True),
        sa.Column("credit_score", sa.Integer(), nullable=True),
        sa.Column("emergency_contact_name", sa.String(length=200), nullable=True),
        sa.Column("emergency_contact_phone", sa.String(length=40), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_tenants_profile_id", "tenants", ["profile_id"])

    op.create_table(
        "leases",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("unit_id", sa.String(length=36), sa.ForeignKey("units.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tenant_id", sa.String(length=36), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("monthly_rent", sa.Numeric(12, 2), nullable=False),
        sa.Column("deposit", sa.Numeric(12, 2), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("terms", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("start_date < end_date", name="ck_leases_date_order"),
        sa.CheckConstraint("monthly_rent > 0", name="ck_leases_rent_positive"),
        sa.CheckConstraint("status IN ('draft', 'active', 'ended', 'terminated')", name="ck_leases_status"),
    )
    op.create_index("ix_leases_unit_id", "leases", ["unit_id"])
    op.create_index("ix_leases_tenant_id", "leases", ["tenant_id"])
    op.create_index("ix_leases_status", "leases", ["status"])
    op.create_index(
        "uq_leases_one_active_per_unit",
        "leases",
        ["unit_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
        sqlite_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("lease_id", sa.String(length=36), sa.ForeignKey("leases.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("method", sa.String(length=20), nullable=True),
        sa.Column("late_fee", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        sa.CheckConstraint("late_fee >= 0", name="ck_payments_late_fee_nonnegative"),
        sa.CheckConstraint("status IN ('pending', 'paid', 'failed', 'refunded')", name="ck_payments_status"),
        sa.CheckConstraint(
            "method IS NULL OR method IN ('cash', 'card', 'online', 'check')", name="ck_payments_method"
        ),
        sa.UniqueConstraint("lease_id", "due_date", name="uq_payments_lease_due_date"),
    )
    op.create_index("ix_payments_lease_id", "payments", ["lease_id"])
    op.create_index("ix_payments_due_date", "payments", ["due_date"])
    op.create_index("ix_payments_status", "payments", ["status"])

    op.create_table(
        "maintenance_requests",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("unit_id", sa.String(length=36), sa.ForeignKey("units.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tenant_id", sa.String(length=36), sa.ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True),
        sa.Column("category", sa.String(length=20), nullable=False, server_default="general"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="open"),
        sa.Column("assigned_to", sa.String(length=160), nullable=True),
        sa.Column("estimated_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("actual_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("category IN ('plumbing', 'electrical', 'hvac', 'general')", name="ck_maintenance_category"),
        sa.CheckConstraint(
            "status IN ('open', 'assigned', 'in_progress', 'resolved', 'cancelled')", name="ck_maintenance_status"
        ),
        sa.CheckConstraint("priority BETWEEN 1 AND 5", name="ck_maintenance_priority"),
    )
    op.create_index("ix_maintenance_requests_unit_id", "maintenance_requests", ["unit_id"])
    op.create_index("ix_maintenance_requests_tenant_id", "maintenance_requests", ["tenant_id"])
    op.create_index("ix_maintenance_requests_status", "maintenance_requests", ["status"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("actor", sa.String(length=200), nullable=True),
        sa.Column("scope", sa.String(length=40), nullable=False),
        sa.Column("op", sa.String(length=60), nullable=False),
        sa.Column("object_type", sa.String(length=60), nullable=False),
        sa.Column("object_id", sa.String(length=80), nullable=True),
        sa.Column("correlation_id", sa.String(length=80), nullable=True),
        sa.Column("sql_statement", sa.Text(), nullable=True),
        sa.Column("params", sa.Text(), nullable=True),
        sa.Column("rows_affected", sa.Integer(), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="success"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.CheckConstraint("status IN ('success', 'error')", name="ck_audit_log_status"),
    )
    op.create_index("ix_audit_log_created_at", "audit_log", ["created_at"])
    op.create_index("ix_audit_log_op", "audit_log", ["op"])
    op.create_index("ix_audit_log_correlation_id", "audit_log", ["correlation_id"])
    op.create_index("ix_audit_log_object", "audit_log", ["object_type", "object_id"])

    op.execute(MISMATCH_VIEW)


def downgrade():
    op.execute("DROP VIEW IF EXISTS lease_unit_status_mismatches")
    op.drop_table("audit_log")
    op.drop_table("maintenance_requests")
    op.drop_table("payments")
    op.drop_table("leases")
    op.drop_table("tenants")
    op.drop_table("holds")
    op.drop_table("units")
    op.drop_table("properties")
    op.drop_table("user_roles")
    op.drop_table("app_users")
