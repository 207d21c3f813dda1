"""init schema (sync metadata + client groups/clients + lists/shares/items)

Revision ID: 20261019_0001
Revises: None
Create Date: 2026-10-19 00:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(table_name: str) -> bool:
    bind = op.get_bind()
    insp = inspect(bind)
    return table_name in insp.get_table_names()


def _versioned_columns() -> list[sa.Column]:
    return [
        sa.Column("row_version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("last_modified", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    if not _table_exists("sync_meta"):
        meta = op.create_table(
            "sync_meta",
            sa.Column("key", sa.String(length=64), primary_key=True, nullable=False),
            sa.Column("value", sa.JSON(), nullable=True),
        )
        op.bulk_insert(meta, [{"key": "schemaVersion", "value": 1}])

    if not _table_exists("sync_client_groups"):
        op.create_table(
            "sync_client_groups",
            sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=True),
            sa.Column("cvr_version", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("client_version", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("last_modified", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index(
            "ix_sync_client_groups_user_id", "sync_client_groups", ["user_id"], unique=False
        )

    if not _table_exists("sync_clients"):
        op.create_table(
            "sync_clients",
            sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
            sa.Column("client_group_id", sa.String(length=36), nullable=False),
            sa.Column("last_mutation_id", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("client_version", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("last_modified", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index(
            "ix_sync_clients_client_group_id", "sync_clients", ["client_group_id"], unique=False
        )
        op.create_index(
            "ix_sync_clients_client_version", "sync_clients", ["client_version"], unique=False
        )

    if not _table_exists("lists"):
        op.create_table(
            "lists",
            sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
            sa.Column("owner_id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(), nullable=False),
            *_versioned_columns(),
        )
        op.create_index("ix_lists_owner_id", "lists", ["owner_id"], unique=False)

    if not _table_exists("shares"):
        op.create_table(
            "shares",
            sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
            sa.Column("list_id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=False),
            *_versioned_columns(),
        )
        op.create_index("ix_shares_list_id", "shares", ["list_id"], unique=False)
        op.create_index("ix_shares_user_id", "shares", ["user_id"], unique=False)

    if not _table_exists("items"):
        op.create_table(
            "items",
            sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
            sa.Column("list_id", sa.String(length=36), nullable=False),
            sa.Column("text", sa.String(), nullable=False),
            sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
            *_versioned_columns(),
        )
        op.create_index("ix_items_list_id", "items", ["list_id"], unique=False)
        op.create_index("ix_items_sort_order", "items", ["sort_order"], unique=False)


def downgrade() -> None:
    for index_name, table_name in (
        ("ix_items_sort_order", "items"),
        ("ix_items_list_id", "items"),
        ("ix_shares_user_id", "shares"),
        ("ix_shares_list_id", "shares"),
        ("ix_lists_owner_id", "lists"),
        ("ix_sync_clients_client_version", "sync_clients"),
        ("ix_sync_clients_client_group_id", "sync_clients"),
        ("ix_sync_client_groups_user_id", "sync_client_groups"),
    ):
        op.drop_index(index_name, table_name=table_name)
    for table_name in ("items", "shares", "lists", "sync_clients", "sync_client_groups", "sync_meta"):
        op.drop_table(table_name)
