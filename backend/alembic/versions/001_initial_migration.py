"""Initial migration: hangars, layouts, stands, aircraft, maintenance events, reservations, audit

Revision ID: 001_initial
Revises:
Create Date: 2026-01-05 00:00:00.000000

"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "hangar",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
    )

    op.create_table(
        "hangarlayout",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("hangar_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["hangar_id"], ["hangar.id"]),
        sa.UniqueConstraint("hangar_id", "code", name="uq_layout_hangar_code"),
    )
    op.create_index("ix_hangarlayout_hangar_id", "hangarlayout", ["hangar_id"])

    op.create_table(
        "hangarstand",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("layout_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("x", sa.Float(), nullable=False, server_default="0"),
        sa.Column("y", sa.Float(), nullable=False, server_default="0"),
        sa.Column("w", sa.Float(), nullable=False, server_default="0"),
        sa.Column("h", sa.Float(), nullable=False, server_default="0"),
        sa.Column("rotate", sa.Float(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["layout_id"], ["hangarlayout.id"]),
        sa.UniqueConstraint("layout_id", "code", name="uq_stand_layout_code"),
    )
    op.create_index("ix_hangarstand_layout_id", "hangarstand", ["layout_id"])

    op.create_table(
        "aircraft",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tail_number", sa.String(), nullable=False),
        sa.Column("serial_number", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_aircraft_tail_number", "aircraft", ["tail_number"], unique=True)

    op.create_table(
        "maintenanceevent",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("level", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="PLANNED"),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("aircraft_id", sa.Integer(), nullable=False),
        sa.Column("start_at", sa.DateTime(), nullable=False),
        sa.Column("end_at", sa.DateTime(), nullable=False),
        sa.Column("hangar_id", sa.Integer(), nullable=True),
        sa.Column("layout_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["aircraft_id"], ["aircraft.id"]),
        sa.ForeignKeyConstraint(["hangar_id"], ["hangar.id"]),
        sa.ForeignKeyConstraint(["layout_id"], ["hangarlayout.id"]),
    )
    op.create_index("ix_maintenanceevent_aircraft_id", "maintenanceevent", ["aircraft_id"])
    op.create_index("ix_maintenanceevent_hangar_id", "maintenanceevent", ["hangar_id"])
    op.create_index("ix_maintenanceevent_layout_id", "maintenanceevent", ["layout_id"])
    op.create_index("ix_maintenanceevent_window", "maintenanceevent", ["start_at", "end_at"])

    op.create_table(
        "standreservation",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("layout_id", sa.Integer(), nullable=False),
        sa.Column("stand_id", sa.Integer(), nullable=False),
        sa.Column("start_at", sa.DateTime(), nullable=False),
        sa.Column("end_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["event_id"], ["maintenanceevent.id"]),
        sa.ForeignKeyConstraint(["layout_id"], ["hangarlayout.id"]),
        sa.ForeignKeyConstraint(["stand_id"], ["hangarstand.id"]),
        sa.UniqueConstraint("event_id", name="uq_reservation_event"),
    )
    op.create_index("ix_standreservation_layout_id", "standreservation", ["layout_id"])
    op.create_index("ix_standreservation_stand_window", "standreservation", ["stand_id", "start_at", "end_at"])

    op.create_table(
        "maintenanceeventaudit",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("actor", sa.String(length=80), nullable=False, server_default="browser"),
        sa.Column("reason", sa.String(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["event_id"], ["maintenanceevent.id"]),
    )
    op.create_index("ix_eventaudit_event_created", "maintenanceeventaudit", ["event_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_eventaudit_event_created", table_name="maintenanceeventaudit")
    op.drop_table("maintenanceeventaudit")
    op.drop_index("ix_standreservation_stand_window", table_name="standreservation")
    op.drop_index("ix_standreservation_layout_id", table_name="standreservation")
    op.drop_table("standreservation")
    op.drop_index("ix_maintenanceevent_window", table_name="maintenanceevent")
    op.drop_index("ix_maintenanceevent_layout_id", table_name="maintenanceevent")
    op.drop_index("ix_maintenanceevent_hangar_id", table_name="maintenanceevent")
    op.drop_index("ix_maintenanceevent_aircraft_id", table_name="maintenanceevent")
    op.drop_table("maintenanceevent")
    op.drop_index("ix_aircraft_tail_number", table_name="aircraft")
    op.drop_table("aircraft")
    op.drop_index("ix_hangarstand_layout_id", table_name="hangarstand")
    op.drop_table("hangarstand")
    op.drop_index("ix_hangarlayout_hangar_id", table_name="hangarlayout")
    op.drop_table("hangarlayout")
    op.drop_table("hangar")
