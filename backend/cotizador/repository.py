from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import asyncpg

from .schemas import QuotationListFilters


def _affected_rows(status: Optional[str]) -> int:
    # asyncpg devuelve el tag del comando, p. ej. "DELETE 1"
    if not status:
        return 0
    try:
        return int(status.rsplit(" ", maxsplit=1)[-1])
    except ValueError:
        return 0


def _like_pattern(term: str) -> str:
    # ILIKE escapa con \ por defecto
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _build_filters(filters: QuotationListFilters) -> Tuple[str, List[Any]]:
    clauses: List[str] = []
    params: List[Any] = []
    placeholder = 1

    if filters.search:
        clauses.append(f"(c.id ILIKE ${placeholder} OR cl.nombre ILIKE ${placeholder})")
        params.append(_like_pattern(filters.search))
        placeholder += 1

    if filters.cliente_id is not None:
        clauses.append(f"c.cliente_id = ${placeholder}")
        params.append(filters.cliente_id)
        placeholder += 1

    where_clause = " AND ".join(clauses) if clauses else "TRUE"
    return where_clause, params


def _build_assignments(fields: Dict[str, Any]) -> Tuple[str, List[Any]]:
    assignments = ", ".join(f"{column} = ${idx}" for idx, column in enumerate(fields.keys(), start=1))
    return assignments, list(fields.values())


# ---- Clientes ----

async def fetch_clients(conn: asyncpg.Connection) -> List[asyncpg.Record]:
    sql = """
        SELECT id, nombre, email, telefono, direccion, created_at, updated_at
        FROM clientes
        ORDER BY nombre ASC, id ASC
    """
    return await conn.fetch(sql)


async def fetch_client(conn: asyncpg.Connection, client_id: int) -> Optional[asyncpg.Record]:
    sql = """
        SELECT id, nombre, email, telefono, direccion, created_at, updated_at
        FROM clientes
        WHERE id = $1
    """
    return await conn.fetchrow(sql, client_id)


async def fetch_client_stats(conn: asyncpg.Connection, client_id: int) -> Optional[asyncpg.Record]:
    sql = """
        SELECT cl.id,
               cl.nombre,
               cl.email,
               cl.telefono,
               cl.direccion,
               cl.created_at,
               cl.updated_at,
               COUNT(c.id) AS total_cotizaciones,
               COALESCE(SUM(c.total), 0) AS monto_total,
               MIN(c.fecha) AS primera_cotizacion,
               MAX(c.fecha) AS ultima_cotizacion
        FROM clientes cl
        LEFT JOIN cotizaciones c ON c.cliente_id = cl.id
        WHERE cl.id = $1
        GROUP BY cl.id
    """
    return await conn.fetchrow(sql, client_id)


async def insert_client(conn: asyncpg.Connection, payload: Dict[str, Any]) -> asyncpg.Record:
    sql = """
        INSERT INTO clientes (nombre, email, telefono, direccion)
        VALUES ($1, $2, $3, $4)
        RETURNING id, nombre, email, telefono, direccion, created_at, updated_at
    """
    return await conn.fetchrow(
        sql,
        payload["nombre"],
        payload.get("email"),
        payload.get("telefono"),
        payload.get("direccion"),
    )


async def update_client(
    conn: asyncpg.Connection,
    client_id: int,
    fields: Dict[str, Any],
) -> Optional[asyncpg.Record]:
    if not fields:
        return await fetch_client(conn, client_id)
    assignments, params = _build_assignments(fields)
    sql = f"""
        UPDATE clientes
        SET {assignments}, updated_at = NOW()
        WHERE id = ${len(params) + 1}
        RETURNING id, nombre, email, telefono, direccion, created_at, updated_at
    """
    return await conn.fetchrow(sql, *params, client_id)


async def count_client_quotations(conn: asyncpg.Connection, client_id: int) -> int:
    return await conn.fetchval("SELECT COUNT(*) FROM cotizaciones WHERE cliente_id = $1", client_id)


async def delete_client(conn: asyncpg.Connection, client_id: int) -> bool:
    status = await conn.execute("DELETE FROM clientes WHERE id = $1", client_id)
    return _affected_rows(status) > 0


async def list_client_quotations(
    conn: asyncpg.Connection,
    client_id: int,
    *,
    limit: int,
    offset: int,
) -> Tuple[List[asyncpg.Record], int]:
    total = await conn.fetchval("SELECT COUNT(*) FROM cotizaciones WHERE cliente_id = $1", client_id)
    sql = """
        SELECT c.id AS cotizacion_id,
               c.fecha,
               COALESCE(c.total, 0) AS total,
               COUNT(ci.id) AS items_count
        FROM cotizaciones c
        LEFT JOIN cotizacion_items ci ON ci.cot_id = c.id
        WHERE c.cliente_id = $1
        GROUP BY c.id
        ORDER BY c.fecha DESC, c.id DESC
        LIMIT $2
        OFFSET $3
    """
    rows = await conn.fetch(sql, client_id, limit, offset)
    return rows, total


async def fetch_top_clients(conn: asyncpg.Connection, *, limit: int) -> List[asyncpg.Record]:
    sql = """
        SELECT cl.id,
               cl.nombre,
               COUNT(c.id) AS total_cotizaciones,
               COALESCE(SUM(c.total), 0) AS monto_total,
               MAX(c.fecha) AS ultima_cotizacion
        FROM clientes cl
        LEFT JOIN cotizaciones c ON c.cliente_id = cl.id
        GROUP BY cl.id, cl.nombre
        HAVING COUNT(c.id) > 0
        ORDER BY monto_total DESC
        LIMIT $1
    """
    return await conn.fetch(sql, limit)


async def search_clients(conn: asyncpg.Connection, term: str, *, limit: int = 10) -> List[asyncpg.Record]:
    sql = """
        SELECT id, nombre, email, telefono
        FROM clientes
        WHERE nombre ILIKE $1 OR email ILIKE $1
        ORDER BY nombre ASC
        LIMIT $2
    """
    return await conn.fetch(sql, _like_pattern(term), limit)


# ---- Items ----

_ITEM_COLUMNS = """
    i.id,
    i.name,
    i.description,
    i.price,
    i.type_id,
    it.name AS type_name,
    i.created_at,
    i.updated_at
"""


async def fetch_item_types(conn: asyncpg.Connection) -> List[asyncpg.Record]:
    return await conn.fetch("SELECT id, name FROM item_types ORDER BY name ASC")


async def item_type_exists(conn: asyncpg.Connection, type_id: int) -> bool:
    exists = await conn.fetchval("SELECT 1 FROM item_types WHERE id = $1", type_id)
    return bool(exists)


async def fetch_items(conn: asyncpg.Connection) -> List[asyncpg.Record]:
    sql = f"""
        SELECT {_ITEM_COLUMNS}
        FROM items i
        JOIN item_types it ON it.id = i.type_id
        ORDER BY i.name ASC, i.id ASC
    """
    return await conn.fetch(sql)


async def fetch_item(conn: asyncpg.Connection, item_id: int) -> Optional[asyncpg.Record]:
    sql = f"""
        SELECT {_ITEM_COLUMNS}
        FROM items i
        JOIN item_types it ON it.id = i.type_id
        WHERE i.id = $1
    """
    return await conn.fetchrow(sql, item_id)


async def insert_item(conn: asyncpg.Connection, payload: Dict[str, Any]) -> int:
    sql = """
        INSERT INTO items (name, description, price, type_id)
        VALUES ($1, $2, $3, $4)
        RETURNING id
    """
    return await conn.fetchval(
        sql,
        payload["name"],
        payload.get("description"),
        payload["price"],
        payload["type_id"],
    )


async def update_item(conn: asyncpg.Connection, item_id: int, fields: Dict[str, Any]) -> bool:
    if not fields:
        return True
    assignments, params = _build_assignments(fields)
    sql = f"""
        UPDATE items
        SET {assignments}, updated_at = NOW()
        WHERE id = ${len(params) + 1}
    """
    status = await conn.execute(sql, *params, item_id)
    return _affected_rows(status) > 0


async def count_item_usage(conn: asyncpg.Connection, item_id: int) -> int:
    return await conn.fetchval("SELECT COUNT(*) FROM cotizacion_items WHERE item_id = $1", item_id)


async def delete_item(conn: asyncpg.Connection, item_id: int) -> bool:
    status = await conn.execute("DELETE FROM items WHERE id = $1", item_id)
    return _affected_rows(status) > 0


# ---- Cotizaciones ----

async def fetch_item_for_quotation(conn: asyncpg.Connection, item_id: int) -> Optional[asyncpg.Record]:
    sql = """
        SELECT i.id, i.name, i.price, it.name AS type_name
        FROM items i
        JOIN item_types it ON it.id = i.type_id
        WHERE i.id = $1
    """
    return await conn.fetchrow(sql, item_id)


async def insert_quotation(
    conn: asyncpg.Connection,
    quotation_id: str,
    cliente_id: int,
    fecha: date,
) -> asyncpg.Record:
    # total queda NULL hasta que se insertan todas las lineas
    sql = """
        WITH nueva AS (
            INSERT INTO cotizaciones (id, cliente_id, fecha, total)
            VALUES ($1, $2, $3, NULL)
            RETURNING id, cliente_id, fecha, created_at
        )
        SELECT nueva.id, nueva.cliente_id, nueva.fecha, nueva.created_at, cl.nombre AS cliente_nombre
        FROM nueva
        JOIN clientes cl ON cl.id = nueva.cliente_id
    """
    return await conn.fetchrow(sql, quotation_id, cliente_id, fecha)


async def insert_quotation_line(
    conn: asyncpg.Connection,
    quotation_id: str,
    item_id: int,
    quantity: int,
    unit_price: Decimal,
) -> None:
    sql = """
        INSERT INTO cotizacion_items (cot_id, item_id, quantity, unit_price)
        VALUES ($1, $2, $3, $4)
    """
    await conn.execute(sql, quotation_id, item_id, quantity, unit_price)


async def update_quotation_total(conn: asyncpg.Connection, quotation_id: str, total: Decimal) -> None:
    await conn.execute("UPDATE cotizaciones SET total = $1 WHERE id = $2", total, quotation_id)


async def fetch_quotation(conn: asyncpg.Connection, quotation_id: str) -> Optional[asyncpg.Record]:
    sql = """
        SELECT c.id, c.cliente_id, c.fecha, c.total, c.created_at, cl.nombre AS cliente_nombre
        FROM cotizaciones c
        JOIN clientes cl ON cl.id = c.cliente_id
        WHERE c.id = $1
    """
    return await conn.fetchrow(sql, quotation_id)


async def fetch_quotation_lines(conn: asyncpg.Connection, quotation_id: str) -> List[asyncpg.Record]:
    sql = """
        SELECT ci.item_id AS id,
               i.name,
               it.name AS type_name,
               ci.unit_price AS price,
               ci.quantity
        FROM cotizacion_items ci
        JOIN items i ON i.id = ci.item_id
        JOIN item_types it ON it.id = i.type_id
        WHERE ci.cot_id = $1
        ORDER BY ci.id ASC
    """
    return await conn.fetch(sql, quotation_id)


async def delete_quotation(conn: asyncpg.Connection, quotation_id: str) -> bool:
    # las lineas se eliminan por ON DELETE CASCADE
    status = await conn.execute("DELETE FROM cotizaciones WHERE id = $1", quotation_id)
    return _affected_rows(status) > 0


async def list_quotations(
    conn: asyncpg.Connection,
    filters: QuotationListFilters,
    *,
    limit: int,
    offset: int,
) -> Tuple[List[asyncpg.Record], int]:
    where_clause, params = _build_filters(filters)
    count_sql = f"""
        SELECT COUNT(*)
        FROM cotizaciones c
        JOIN clientes cl ON cl.id = c.cliente_id
        WHERE {where_clause}
    """
    total = await conn.fetchval(count_sql, *params)

    sql = f"""
        SELECT c.id, c.cliente_id, c.fecha, COALESCE(c.total, 0) AS total, cl.nombre AS cliente_nombre
        FROM cotizaciones c
        JOIN clientes cl ON cl.id = c.cliente_id
        WHERE {where_clause}
        ORDER BY c.fecha DESC, c.id DESC
        LIMIT ${len(params) + 1}
        OFFSET ${len(params) + 2}
    """
    rows = await conn.fetch(sql, *params, limit, offset)
    return rows, total
