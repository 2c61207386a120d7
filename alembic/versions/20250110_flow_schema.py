"""Flow telemetry schema (squash)

Revision ID: 20250110_flow_schema
Revises: 
Create Date: 2025-01-10 09:00:00

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20250110_flow_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONB = postgresql.JSONB(astext_type=sa.Text())


def upgrade() -> None:
    # company / users
    op.create_table(
        "company",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("domain_name", sa.String(), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("NOW()")),
    )
    op.create_index("ix_company_id", "company", ["id"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False, server_default="user"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("NOW()")),
        sa.ForeignKeyConstraint(["company_id"], ["company.id"], name="users_company_id_fkey"),
    )
    op.create_index("ix_users_id", "users", ["id"], unique=False)
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_company_id", "users", ["company_id"], unique=False)

    # hierarchy
    op.create_table(
        "hierarchy_level",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("level_order", sa.Integer(), nullable=False, unique=True),
        sa.Column("icon", sa.String(), nullable=True),
    )
    op.create_index("ix_hierarchy_level_id", "hierarchy_level", ["id"], unique=False)

    op.create_table(
        "hierarchy",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("level_id", sa.Integer(), nullable=False),
        sa.Column("parent_id", sa.Integer(), nullable=True),
        sa.Column("can_attach_device", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("NOW()")),
        sa.ForeignKeyConstraint(["company_id"], ["company.id"], name="hierarchy_company_id_fkey"),
        sa.ForeignKeyConstraint(["level_id"], ["hierarchy_level.id"], name="hierarchy_level_id_fkey"),
        sa.ForeignKeyConstraint(["parent_id"], ["hierarchy.id"], name="hierarchy_parent_id_fkey", ondelete="CASCADE"),
    )
    op.create_index("ix_hierarchy_id", "hierarchy", ["id"], unique=False)
    op.create_index("ix_hierarchy_company_id", "hierarchy", ["company_id"], unique=False)
    op.create_index("ix_hierarchy_parent_id", "hierarchy", ["parent_id"], unique=False)

    # device catalog
    op.create_table(
        "device_type",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("type_name", sa.String(), nullable=False, unique=True),
        sa.Column("logo", sa.String(), nullable=True),
    )
    op.create_index("ix_device_type_id", "device_type", ["id"], unique=False)

    op.create_table(
        "device_data_mapping",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("device_type_id", sa.Integer(), nullable=False),
        sa.Column("variable_name", sa.String(), nullable=False),
        sa.Column("variable_tag", sa.String(), nullable=False),
        sa.Column("data_type", sa.String(), nullable=False, server_default="numeric"),
        sa.Column("unit", sa.String(), nullable=True),
        sa.Column("expression", sa.String(), nullable=True),
        sa.Column("ui_order", sa.Integer(), nullable=False, server_default="0"),
        sa.ForeignKeyConstraint(["device_type_id"], ["device_type.id"], name="device_data_mapping_device_type_id_fkey"),
        sa.UniqueConstraint("device_type_id", "variable_tag", name="uq_mapping_type_tag"),
    )
    op.create_index("ix_device_data_mapping_id", "device_data_mapping", ["id"], unique=False)
    op.create_index("ix_device_data_mapping_device_type_id", "device_data_mapping", ["device_type_id"], unique=False)

    op.create_table(
        "device",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("hierarchy_id", sa.Integer(), nullable=True),
        sa.Column("device_type_id", sa.Integer(), nullable=False),
        sa.Column("serial_number", sa.String(), nullable=False),
        sa.Column("metadata", JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("NOW()")),
        sa.ForeignKeyConstraint(["company_id"], ["company.id"], name="device_company_id_fkey"),
        sa.ForeignKeyConstraint(["hierarchy_id"], ["hierarchy.id"], name="device_hierarchy_id_fkey", ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["device_type_id"], ["device_type.id"], name="device_device_type_id_fkey"),
    )
    op.create_index("ix_device_id", "device", ["id"], unique=False)
    op.create_index("ix_device_serial_number", "device", ["serial_number"], unique=True)
    op.create_index("ix_device_company_id", "device", ["company_id"], unique=False)
    op.create_index("ix_device_hierarchy_id", "device", ["hierarchy_id"], unique=False)

    # readings
    op.create_table(
        "device_data",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("device_id", sa.Integer(), nullable=False),
        sa.Column("serial_number", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("data", JSONB, nullable=False),
        sa.ForeignKeyConstraint(["device_id"], ["device.id"], name="device_data_device_id_fkey", ondelete="CASCADE"),
    )
    op.create_index("ix_device_data_id", "device_data", ["id"], unique=False)
    op.create_index("ix_device_data_serial_number", "device_data", ["serial_number"], unique=False)
    op.create_index("ix_device_data_device_created", "device_data", ["device_id", "created_at"], unique=False)

    op.create_table(
        "device_latest",
        sa.Column("device_id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("serial_number", sa.String(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("received_at", sa.DateTime(), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("data", JSONB, nullable=False),
        sa.ForeignKeyConstraint(["device_id"], ["device.id"], name="device_latest_device_id_fkey", ondelete="CASCADE"),
    )
    op.create_index("ix_device_latest_serial_number", "device_latest", ["serial_number"], unique=False)

    # alarms
    op.create_table(
        "alarm_types",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("severity", sa.String(), nullable=False),
    )
    op.create_index("ix_alarm_types_id", "alarm_types", ["id"], unique=False)

    op.create_table(
        "alarm_status_type",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("description", sa.String(), nullable=True),
    )
    op.create_index("ix_alarm_status_type_id", "alarm_status_type", ["id"], unique=False)

    op.create_table(
        "device_alarms",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("device_serial", sa.String(), nullable=False),
        sa.Column("alarm_type_id", sa.Integer(), nullable=False),
        sa.Column("status_id", sa.Integer(), nullable=False),
        sa.Column("message", sa.String(500), nullable=True),
        sa.Column("metadata", JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("acknowledged_by", sa.Integer(), nullable=True),
        sa.Column("acknowledged_at", sa.DateTime(), nullable=True),
        sa.Column("resolved_by", sa.Integer(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["device_serial"], ["device.serial_number"], name="device_alarms_device_serial_fkey"),
        sa.ForeignKeyConstraint(["alarm_type_id"], ["alarm_types.id"], name="device_alarms_alarm_type_id_fkey"),
        sa.ForeignKeyConstraint(["status_id"], ["alarm_status_type.id"], name="device_alarms_status_id_fkey"),
        sa.ForeignKeyConstraint(["acknowledged_by"], ["users.id"], name="device_alarms_acknowledged_by_fkey"),
        sa.ForeignKeyConstraint(["resolved_by"], ["users.id"], name="device_alarms_resolved_by_fkey"),
    )
    op.create_index("ix_device_alarms_id", "device_alarms", ["id"], unique=False)
    op.create_index("ix_device_alarms_device_serial", "device_alarms", ["device_serial"], unique=False)
    op.create_index("ix_device_alarms_created_at", "device_alarms", ["created_at"], unique=False)

    # widgets / dashboards
    op.create_table(
        "widget_types",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False, unique=True),
        sa.Column("component_name", sa.String(), nullable=False),
        sa.Column("default_config", JSONB, nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("NOW()")),
    )

    op.create_table(
        "widget_definitions",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("widget_type_id", sa.Uuid(), nullable=False),
        sa.Column("data_source_config", JSONB, nullable=False),
        sa.Column("layout_config", JSONB, nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("NOW()")),
        sa.ForeignKeyConstraint(["widget_type_id"], ["widget_types.id"], name="widget_definitions_widget_type_id_fkey"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], name="widget_definitions_created_by_fkey"),
    )

    op.create_table(
        "dashboards",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("grid_config", JSONB, nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("NOW()")),
        sa.ForeignKeyConstraint(["company_id"], ["company.id"], name="dashboards_company_id_fkey"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], name="dashboards_created_by_fkey"),
    )
    op.create_index("ix_dashboards_company_id", "dashboards", ["company_id"], unique=False)

    op.create_table(
        "dashboard_layouts",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("dashboard_id", sa.Uuid(), nullable=False),
        sa.Column("widget_definition_id", sa.Uuid(), nullable=False),
        sa.Column("layout_config", JSONB, nullable=False),
        sa.Column("instance_config", JSONB, nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("NOW()")),
        sa.ForeignKeyConstraint(["dashboard_id"], ["dashboards.id"], name="dashboard_layouts_dashboard_id_fkey", ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["widget_definition_id"], ["widget_definitions.id"], name="dashboard_layouts_widget_definition_id_fkey"),
        sa.UniqueConstraint("dashboard_id", "widget_definition_id", name="uq_dashboard_widget"),
    )


def downgrade() -> None:
    op.drop_table("dashboard_layouts")
    op.drop_index("ix_dashboards_company_id", table_name="dashboards")
    op.drop_table("dashboards")
    op.drop_table("widget_definitions")
    op.drop_table("widget_types")

    op.drop_index("ix_device_alarms_created_at", table_name="device_alarms")
    op.drop_index("ix_device_alarms_device_serial", table_name="device_alarms")
    op.drop_index("ix_device_alarms_id", table_name="device_alarms")
    op.drop_table("device_alarms")
    op.drop_index("ix_alarm_status_type_id", table_name="alarm_status_type")
    op.drop_table("alarm_status_type")
    op.drop_index("ix_alarm_types_id", table_name="alarm_types")
    op.drop_table("alarm_types")

    op.drop_index("ix_device_latest_serial_number", table_name="device_latest")
    op.drop_table("device_latest")
    op.drop_index("ix_device_data_device_created", table_name="device_data")
    op.drop_index("ix_device_data_serial_number", table_name="device_data")
    op.drop_index("ix_device_data_id", table_name="device_data")
    op.drop_table("device_data")

    op.drop_index("ix_device_hierarchy_id", table_name="device")
    op.drop_index("ix_device_company_id", table_name="device")
    op.drop_index("ix_device_serial_number", table_name="device")
    op.drop_index("ix_device_id", table_name="device")
    op.drop_table("device")
    op.drop_index("ix_device_data_mapping_device_type_id", table_name="device_data_mapping")
    op.drop_index("ix_device_data_mapping_id", table_name="device_data_mapping")
    op.drop_table("device_data_mapping")
    op.drop_index("ix_device_type_id", table_name="device_type")
    op.drop_table("device_type")

    op.drop_index("ix_hierarchy_parent_id", table_name="hierarchy")
    op.drop_index("ix_hierarchy_company_id", table_name="hierarchy")
    op.drop_index("ix_hierarchy_id", table_name="hierarchy")
    op.drop_table("hierarchy")
    op.drop_index("ix_hierarchy_level_id", table_name="hierarchy_level")
    op.drop_table("hierarchy_level")

    op.drop_index("ix_users_company_id", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_id", table_name="users")
    op.drop_table("users")
    op.drop_index("ix_company_id", table_name="company")
    op.drop_table("company")
