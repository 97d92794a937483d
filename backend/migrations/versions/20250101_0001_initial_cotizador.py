"""Crear tablas base del cotizador

Revision ID: 20250101_0001
Revises: 
Create Date: 2025-01-01 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20250101_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "item_types",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.UniqueConstraint("name", name="uq_item_types_name"),
    )

    op.create_table(
        "items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("type_id", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(
            ["type_id"],
            ["item_types.id"],
            name="fk_items_type",
            ondelete="RESTRICT",
        ),
        sa.UniqueConstraint("name", name="uq_items_name"),
        sa.CheckConstraint("price > 0", name="chk_items_price"),
    )
    op.create_index("idx_items_type", "items", ["type_id"])

    op.create_table(
        "clientes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("nombre", sa.Text(), nullable=False),
        sa.Column("email", sa.Text()),
        sa.Column("telefono", sa.Text()),
        sa.Column("direccion", sa.Text()),
        *_timestamps(),
        sa.UniqueConstraint("email", name="uq_clientes_email"),
    )
    op.create_index("idx_clientes_nombre", "clientes", ["nombre"])

    op.create_table(
        "cotizaciones",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("cliente_id", sa.Integer(), nullable=False),
        sa.Column("fecha", sa.Date(), nullable=False, server_default=sa.text("CURRENT_DATE")),
        sa.Column("total", sa.Numeric(12, 2)),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.ForeignKeyConstraint(
            ["cliente_id"],
            ["clientes.id"],
            name="fk_cotizaciones_cliente",
            ondelete="RESTRICT",
        ),
        sa.CheckConstraint("total IS NULL OR total >= 0", name="chk_cotizaciones_total"),
    )
    op.create_index("idx_cotizaciones_cliente", "cotizaciones", ["cliente_id"])
    op.create_index("idx_cotizaciones_fecha", "cotizaciones", ["fecha"])

    op.create_table(
        "cotizacion_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("cot_id", sa.Text(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.ForeignKeyConstraint(
            ["cot_id"],
            ["cotizaciones.id"],
            name="fk_cotizacion_items_cotizacion",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["item_id"],
            ["items.id"],
            name="fk_cotizacion_items_item",
            ondelete="RESTRICT",
        ),
        sa.CheckConstraint("quantity >= 1", name="chk_cotizacion_items_quantity"),
        sa.CheckConstraint("unit_price >= 0", name="chk_cotizacion_items_unit_price"),
    )
    op.create_index("idx_cotizacion_items_cotizacion", "cotizacion_items", ["cot_id"])
    op.create_index("idx_cotizacion_items_item", "cotizacion_items", ["item_id"])


def downgrade() -> None:
    op.drop_index("idx_cotizacion_items_item", table_name="cotizacion_items")
    op.drop_index("idx_cotizacion_items_cotizacion", table_name="cotizacion_items")
    op.drop_table("cotizacion_items")
    op.drop_index("idx_cotizaciones_fecha", table_name="cotizaciones")
    op.drop_index("idx_cotizaciones_cliente", table_name="cotizaciones")
    op.drop_table("cotizaciones")
    op.drop_index("idx_clientes_nombre", table_name="clientes")
    op.drop_table("clientes")
    op.drop_index("idx_items_type", table_name="items")
    op.drop_table("items")
    op.drop_table("item_types")
