"""Initial schema: users, api keys, audit logs, contracts, milestones, payments.

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    user_role = sa.Enum("CLIENT", "PROVIDER", name="userrole")
    contract_status = sa.Enum("DRAFT", "SENT", "SIGNED", "COMPLETED", "CANCELLED", name="contractstatus")
    milestone_status = sa.Enum("PENDING", "COMPLETED", "PAID", name="milestonestatus")
    payment_status = sa.Enum("PENDING", "PROCESSING", "COMPLETED", "FAILED", name="paymentstatus")
    payment_gateway = sa.Enum("STRIPE", "WIPAY", name="paymentgateway")

    op.create_table(
        "users",
        *_timestamps(),
        sa.Column("username", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=True),
        sa.Column("role", user_role, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("username"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "api_keys",
        *_timestamps(),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("prefix", sa.String(length=32), nullable=False),
        sa.Column("key_hash", sa.String(length=128), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("name"),
        sa.UniqueConstraint("key_hash"),
    )
    op.create_index("ix_api_keys_user_id", "api_keys", ["user_id"], unique=False)

    op.create_table(
        "audit_logs",
        *_timestamps(),
        sa.Column("actor", sa.String(length=100), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("data_json", sa.JSON(), nullable=False),
        sa.Column("at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity", "entity_id"], unique=False)

    op.create_table(
        "contracts",
        *_timestamps(),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("provider_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("total_amount", sa.Integer(), nullable=True),
        sa.Column("document_url", sa.String(length=500), nullable=True),
        sa.Column("status", contract_status, nullable=False, server_default="DRAFT"),
        sa.Column("signed_by_client", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("signed_by_provider", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("client_signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("provider_signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("signed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint("client_id <> provider_id", name="ck_contract_distinct_parties"),
        sa.CheckConstraint(
            "total_amount IS NULL OR total_amount > 0",
            name="ck_contract_positive_total_amount",
        ),
    )
    op.create_index("ix_contracts_status", "contracts", ["status"], unique=False)
    op.create_index("ix_contracts_client_id", "contracts", ["client_id"], unique=False)
    op.create_index("ix_contracts_provider_id", "contracts", ["provider_id"], unique=False)

    op.create_table(
        "milestones",
        *_timestamps(),
        sa.Column("contract_id", sa.Integer(), sa.ForeignKey("contracts.id"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("status", milestone_status, nullable=False, server_default="PENDING"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_milestone_positive_amount"),
    )
    op.create_index("ix_milestones_contract_id", "milestones", ["contract_id"], unique=False)

    op.create_table(
        "payments",
        *_timestamps(),
        sa.Column("contract_id", sa.Integer(), sa.ForeignKey("contracts.id"), nullable=False),
        sa.Column("milestone_id", sa.Integer(), sa.ForeignKey("milestones.id"), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("provider_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("gateway", payment_gateway, nullable=False),
        sa.Column("status", payment_status, nullable=False, server_default="PENDING"),
        sa.Column("external_reference", sa.String(length=128), nullable=True),
        sa.Column("checkout_url", sa.String(length=500), nullable=True),
        sa.Column("failure_reason", sa.String(length=255), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_payment_positive_amount"),
        sa.UniqueConstraint("external_reference"),
    )
    op.create_index("ix_payments_contract_id", "payments", ["contract_id"], unique=False)
    op.create_index("ix_payments_milestone_id", "payments", ["milestone_id"], unique=False)
    op.create_index("ix_payments_created_at", "payments", ["created_at"], unique=False)
    op.create_index("ix_payments_status", "payments", ["status"], unique=False)
    op.create_index("ix_payments_client_id", "payments", ["client_id"], unique=False)
    op.create_index("ix_payments_provider_id", "payments", ["provider_id"], unique=False)

    in_flight = sa.text("status IN ('PENDING', 'PROCESSING')")
    op.create_index(
        "uq_payments_milestone_in_flight",
        "payments",
        ["milestone_id"],
        unique=True,
        sqlite_where=in_flight,
        postgresql_where=in_flight,
    )


def downgrade() -> None:
    op.drop_index("uq_payments_milestone_in_flight", table_name="payments")
    op.drop_index("ix_payments_provider_id", table_name="payments")
    op.drop_index("ix_payments_client_id", table_name="payments")
    op.drop_index("ix_payments_status", table_name="payments")
    op.drop_index("ix_payments_created_at", table_name="payments")
    op.drop_index("ix_payments_milestone_id", table_name="payments")
    op.drop_index("ix_payments_contract_id", table_name="payments")
    op.drop_table("payments")

    op.drop_index("ix_milestones_contract_id", table_name="milestones")
    op.drop_table("milestones")

    op.drop_index("ix_contracts_provider_id", table_name="contracts")
    op.drop_index("ix_contracts_client_id", table_name="contracts")
    op.drop_index("ix_contracts_status", table_name="contracts")
    op.drop_table("contracts")

    op.drop_index("ix_audit_logs_entity", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_api_keys_user_id", table_name="api_keys")
    op.drop_table("api_keys")

    op.drop_table("users")

    bind = op.get_bind()
    for name in ("paymentgateway", "paymentstatus", "milestonestatus", "contractstatus", "userrole"):
        sa.Enum(name=name).drop(bind, checkfirst=True)
