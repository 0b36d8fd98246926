"""create audit events and security alerts tables"""

from alembic import op
import sqlalchemy as sa


revision = "202610180001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_kind", sa.String(length=64), nullable=False),
        sa.Column("actor_id", sa.String(length=64)),
        sa.Column("session_id", sa.String(length=128)),
        sa.Column("source_address", sa.String(length=64)),
        sa.Column("client_agent", sa.String(length=255)),
        sa.Column("risk_level", sa.String(length=16), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("metadata", sa.JSON()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_events_event_kind", "audit_events", ["event_kind"])
    op.create_index("ix_audit_events_created_at", "audit_events", ["created_at"])
    op.create_index("ix_audit_events_actor_id", "audit_events", ["actor_id"])
    op.create_index(
        "ix_audit_events_source_address", "audit_events", ["source_address"]
    )

    op.create_table(
        "security_alerts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("alert_type", sa.String(length=64), nullable=False),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("actor_id", sa.String(length=64)),
        sa.Column("source_address", sa.String(length=64)),
        sa.Column("metadata", sa.JSON()),
        sa.Column("dedup_key", sa.String(length=255)),
        sa.Column(
            "resolved",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column("resolved_at", sa.DateTime(timezone=True)),
        sa.Column("resolved_by", sa.String(length=64)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("dedup_key", name="uq_security_alerts_dedup_key"),
    )
    op.create_index(
        "ix_security_alerts_created_at", "security_alerts", ["created_at"]
    )
    op.create_index(
        "ix_security_alerts_resolved", "security_alerts", ["resolved"]
    )
    op.create_index(
        "ix_security_alerts_source_address",
        "security_alerts",
        ["source_address"],
    )


def downgrade() -> None:
    op.drop_index("ix_security_alerts_source_address", table_name="security_alerts")
    op.drop_index("ix_security_alerts_resolved", table_name="security_alerts")
    op.drop_index("ix_security_alerts_created_at", table_name="security_alerts")
    op.drop_table("security_alerts")

    op.drop_index("ix_audit_events_source_address", table_name="audit_events")
    op.drop_index("ix_audit_events_actor_id", table_name="audit_events")
    op.drop_index("ix_audit_events_created_at", table_name="audit_events")
    op.drop_index("ix_audit_events_event_kind", table_name="audit_events")
    op.drop_table("audit_events")
