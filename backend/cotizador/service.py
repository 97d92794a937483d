from __future__ import annotations

import logging
import math
from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from typing import Any, Dict, List, Optional

import asyncpg

from . import repository
from .exceptions import (
    ClientExistsError,
    ClientNotFoundError,
    ConflictError,
    CotizadorError,
    IntegrityBlockedError,
    ItemNotFoundError,
    QuotationNotFoundError,
    ValidationError,
)
from .money import CurrencyConfig, DEFAULT_CURRENCY, format_money, round_money
from .schemas import (
    ClientCreatePayload,
    ClientDetail,
    ClientLookup,
    ClientOut,
    ClientQuotationListResponse,
    ClientQuotationSummary,
    ClientTopOut,
    ClientUpdatePayload,
    ItemCreatePayload,
    ItemOut,
    ItemTypeOut,
    ItemUpdatePayload,
    Pagination,
    PaginationInfo,
    QuotationCreatePayload,
    QuotationDetail,
    QuotationLineOut,
    QuotationListFilters,
    QuotationListResponse,
    QuotationSummary,
)

logger = logging.getLogger(__name__)

QUOTATION_ID_PREFIX = "COT"
MAX_ID_ATTEMPTS = 10
# cotizaciones.total es NUMERIC(12,2)
MAX_QUOTATION_TOTAL = Decimal("9999999999.99")


def _now(tz: tzinfo) -> datetime:
    return datetime.now(tz)


def generate_quotation_id(moment: datetime) -> str:
    """Identificador legible COT_<YYYYMMDD>_<HHMMSS> a partir del instante de creacion."""
    return f"{QUOTATION_ID_PREFIX}_{moment:%Y%m%d}_{moment:%H%M%S}"


def _pagination_info(pagination: Pagination, total: int) -> PaginationInfo:
    total_pages = math.ceil(total / pagination.limit) if total else 0
    return PaginationInfo(
        page=pagination.page,
        limit=pagination.limit,
        total=total,
        totalPages=total_pages,
        hasNext=pagination.page < total_pages,
        hasPrev=pagination.page > 1,
    )


# ---- Cotizaciones ----

async def _insert_header(
    conn: asyncpg.Connection,
    base_id: str,
    cliente_id: int,
    fecha,
) -> asyncpg.Record:
    # Cada intento corre en un savepoint para que una colision no aborte la transaccion externa
    for attempt in range(1, MAX_ID_ATTEMPTS + 1):
        quotation_id = base_id if attempt == 1 else f"{base_id}_{attempt}"
        try:
            async with conn.transaction():
                return await repository.insert_quotation(conn, quotation_id, cliente_id, fecha)
        except asyncpg.UniqueViolationError:
            logger.warning("Identificador %s ya existe; reintentando", quotation_id)
            continue
        except asyncpg.ForeignKeyViolationError as exc:
            raise ClientNotFoundError("Cliente no encontrado") from exc
    raise ConflictError("No se pudo generar un identificador unico para la cotizacion")


async def create_quotation(
    pool: asyncpg.pool.Pool,
    payload: QuotationCreatePayload,
    *,
    now: Optional[datetime] = None,
    tz: tzinfo = timezone.utc,
    currency: CurrencyConfig = DEFAULT_CURRENCY,
) -> QuotationDetail:
    """Crea la cabecera y sus lineas en una sola transaccion y devuelve la cotizacion resuelta.

    El total se calcula con el precio vigente de cada item, que queda guardado como
    snapshot en la linea. Cualquier error revierte la transaccion completa. El id y la
    fecha salen de `now` o, si no se indica, del instante actual en `tz`.
    """
    if not payload.items:
        raise ValidationError("La cotizacion debe contener al menos un item")
    for line in payload.items:
        if line.quantity < 1:
            raise ValidationError("Cada item debe tener una cantidad mayor a 0")

    moment = now or _now(tz)
    async with pool.acquire() as conn:
        try:
            async with conn.transaction():
                header = await _insert_header(
                    conn,
                    generate_quotation_id(moment),
                    payload.cliente_id,
                    moment.date(),
                )
                quotation_id = header["id"]
                total = Decimal("0")
                lines: List[QuotationLineOut] = []
                for line in payload.items:
                    item = await repository.fetch_item_for_quotation(conn, line.id)
                    if item is None:
                        raise ItemNotFoundError(f"Item {line.id} no encontrado")
                    unit_price = Decimal(item["price"])
                    line_total = round_money(unit_price * line.quantity)
                    total += line_total
                    try:
                        await repository.insert_quotation_line(
                            conn, quotation_id, line.id, line.quantity, unit_price
                        )
                    except asyncpg.ForeignKeyViolationError as exc:
                        raise ItemNotFoundError(f"Item {line.id} no encontrado") from exc
                    lines.append(
                        QuotationLineOut(
                            id=item["id"],
                            name=item["name"],
                            type_name=item["type_name"],
                            price=unit_price,
                            quantity=line.quantity,
                            total=line_total,
                        )
                    )
                total = round_money(total)
                if total > MAX_QUOTATION_TOTAL:
                    raise ValidationError("El total de la cotizacion excede el maximo permitido")
                await repository.update_quotation_total(conn, quotation_id, total)
        except CotizadorError as exc:
            logger.warning("Cotizacion revertida: %s", exc)
            raise

    logger.info("Cotizacion %s creada para cliente %s (total %s)", quotation_id, payload.cliente_id, total)
    return QuotationDetail(
        id=quotation_id,
        cliente_id=header["cliente_id"],
        cliente_nombre=header["cliente_nombre"],
        fecha=header["fecha"],
        total=total,
        total_formateado=format_money(total, currency),
        items=lines,
    )


async def get_quotation(
    pool: asyncpg.pool.Pool,
    quotation_id: str,
    *,
    currency: CurrencyConfig = DEFAULT_CURRENCY,
) -> Optional[QuotationDetail]:
    """Devuelve la cotizacion resuelta o None si el id no existe."""
    async with pool.acquire() as conn:
        record = await repository.fetch_quotation(conn, quotation_id)
        if record is None:
            return None
        line_rows = await repository.fetch_quotation_lines(conn, quotation_id)

    lines = [
        QuotationLineOut(
            id=row["id"],
            name=row["name"],
            type_name=row["type_name"],
            price=row["price"],
            quantity=row["quantity"],
            total=round_money(Decimal(row["price"]) * row["quantity"]),
        )
        for row in line_rows
    ]
    total = record["total"] if record["total"] is not None else Decimal("0")
    return QuotationDetail(
        id=record["id"],
        cliente_id=record["cliente_id"],
        cliente_nombre=record["cliente_nombre"],
        fecha=record["fecha"],
        total=total,
        total_formateado=format_money(total, currency),
        items=lines,
    )


async def delete_quotation(pool: asyncpg.pool.Pool, quotation_id: str) -> None:
    async with pool.acquire() as conn:
        deleted = await repository.delete_quotation(conn, quotation_id)
    if not deleted:
        raise QuotationNotFoundError("Cotizacion no encontrada")
    logger.info("Cotizacion %s eliminada", quotation_id)


async def list_quotations(
    pool: asyncpg.pool.Pool,
    filters: QuotationListFilters,
    pagination: Pagination,
) -> QuotationListResponse:
    async with pool.acquire() as conn:
        rows, total = await repository.list_quotations(
            conn,
            filters,
            limit=pagination.limit,
            offset=pagination.offset,
        )
    summaries = [
        QuotationSummary(
            id=row["id"],
            cliente_id=row["cliente_id"],
            cliente_nombre=row["cliente_nombre"],
            fecha=row["fecha"],
            total=row["total"],
        )
        for row in rows
    ]
    return QuotationListResponse(items=summaries, pagination=_pagination_info(pagination, total))


# ---- Clientes ----

def _client_from_record(row: asyncpg.Record) -> ClientOut:
    return ClientOut(
        id=row["id"],
        nombre=row["nombre"],
        email=row["email"],
        telefono=row["telefono"],
        direccion=row["direccion"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


async def list_clients(pool: asyncpg.pool.Pool) -> List[ClientOut]:
    async with pool.acquire() as conn:
        rows = await repository.fetch_clients(conn)
    return [_client_from_record(row) for row in rows]


async def get_client_detail(pool: asyncpg.pool.Pool, client_id: int) -> ClientDetail:
    async with pool.acquire() as conn:
        row = await repository.fetch_client_stats(conn, client_id)
    if row is None:
        raise ClientNotFoundError("Cliente no encontrado")
    return ClientDetail(
        **_client_from_record(row).model_dump(),
        total_cotizaciones=row["total_cotizaciones"],
        monto_total=row["monto_total"],
        primera_cotizacion=row["primera_cotizacion"],
        ultima_cotizacion=row["ultima_cotizacion"],
    )


async def create_client(pool: asyncpg.pool.Pool, payload: ClientCreatePayload) -> ClientOut:
    async with pool.acquire() as conn:
        try:
            row = await repository.insert_client(
                conn,
                {
                    "nombre": payload.nombre,
                    "email": str(payload.email) if payload.email else None,
                    "telefono": payload.telefono,
                    "direccion": payload.direccion,
                },
            )
        except asyncpg.UniqueViolationError as exc:
            raise ClientExistsError("Ya existe un cliente con ese email") from exc
    logger.info("Cliente %s creado", row["id"])
    return _client_from_record(row)


async def update_client(
    pool: asyncpg.pool.Pool,
    client_id: int,
    payload: ClientUpdatePayload,
) -> ClientOut:
    fields: Dict[str, Any] = {
        key: (str(value) if key == "email" else value)
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None
    }
    async with pool.acquire() as conn:
        async with conn.transaction():
            if await repository.fetch_client(conn, client_id) is None:
                raise ClientNotFoundError("Cliente no encontrado")
            try:
                row = await repository.update_client(conn, client_id, fields)
            except asyncpg.UniqueViolationError as exc:
                raise ClientExistsError("Ya existe un cliente con ese email") from exc
    return _client_from_record(row)


async def delete_client(pool: asyncpg.pool.Pool, client_id: int) -> None:
    async with pool.acquire() as conn:
        async with conn.transaction():
            if await repository.fetch_client(conn, client_id) is None:
                raise ClientNotFoundError("Cliente no encontrado")
            if await repository.count_client_quotations(conn, client_id) > 0:
                raise IntegrityBlockedError(
                    "No se puede eliminar el cliente porque tiene cotizaciones asociadas"
                )
            try:
                await repository.delete_client(conn, client_id)
            except asyncpg.ForeignKeyViolationError as exc:
                raise IntegrityBlockedError(
                    "No se puede eliminar el cliente porque tiene cotizaciones asociadas"
                ) from exc
    logger.info("Cliente %s eliminado", client_id)


async def list_client_quotations(
    pool: asyncpg.pool.Pool,
    client_id: int,
    pagination: Pagination,
) -> ClientQuotationListResponse:
    async with pool.acquire() as conn:
        if await repository.fetch_client(conn, client_id) is None:
            raise ClientNotFoundError("Cliente no encontrado")
        rows, total = await repository.list_client_quotations(
            conn,
            client_id,
            limit=pagination.limit,
            offset=pagination.offset,
        )
    items = [
        ClientQuotationSummary(
            cotizacion_id=row["cotizacion_id"],
            fecha=row["fecha"],
            total=row["total"],
            items_count=row["items_count"],
        )
        for row in rows
    ]
    return ClientQuotationListResponse(items=items, pagination=_pagination_info(pagination, total))


async def top_clients(pool: asyncpg.pool.Pool, *, limit: int = 10) -> List[ClientTopOut]:
    async with pool.acquire() as conn:
        rows = await repository.fetch_top_clients(conn, limit=limit)
    return [
        ClientTopOut(
            id=row["id"],
            nombre=row["nombre"],
            total_cotizaciones=row["total_cotizaciones"],
            monto_total=row["monto_total"],
            ultima_cotizacion=row["ultima_cotizacion"],
        )
        for row in rows
    ]


async def autocomplete_clients(pool: asyncpg.pool.Pool, term: str) -> List[ClientLookup]:
    term = (term or "").strip()
    if len(term) < 2:
        raise ValidationError("Termino de busqueda muy corto (minimo 2 caracteres)")
    async with pool.acquire() as conn:
        rows = await repository.search_clients(conn, term, limit=10)
    return [
        ClientLookup(id=row["id"], nombre=row["nombre"], email=row["email"], telefono=row["telefono"])
        for row in rows
    ]


# ---- Items ----

def _item_from_record(row: asyncpg.Record, currency: CurrencyConfig) -> ItemOut:
    return ItemOut(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        price=row["price"],
        price_formatted=format_money(row["price"], currency),
        type_id=row["type_id"],
        type_name=row["type_name"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


async def list_item_types(pool: asyncpg.pool.Pool) -> List[ItemTypeOut]:
    async with pool.acquire() as conn:
        rows = await repository.fetch_item_types(conn)
    return [ItemTypeOut(id=row["id"], name=row["name"]) for row in rows]


async def list_items(
    pool: asyncpg.pool.Pool,
    *,
    currency: CurrencyConfig = DEFAULT_CURRENCY,
) -> List[ItemOut]:
    async with pool.acquire() as conn:
        rows = await repository.fetch_items(conn)
    return [_item_from_record(row, currency) for row in rows]


async def get_item(
    pool: asyncpg.pool.Pool,
    item_id: int,
    *,
    currency: CurrencyConfig = DEFAULT_CURRENCY,
) -> ItemOut:
    async with pool.acquire() as conn:
        row = await repository.fetch_item(conn, item_id)
    if row is None:
        raise ItemNotFoundError("Item no encontrado")
    return _item_from_record(row, currency)


async def create_item(
    pool: asyncpg.pool.Pool,
    payload: ItemCreatePayload,
    *,
    currency: CurrencyConfig = DEFAULT_CURRENCY,
) -> ItemOut:
    async with pool.acquire() as conn:
        async with conn.transaction():
            if not await repository.item_type_exists(conn, payload.type_id):
                raise ValidationError("Tipo de item no valido")
            try:
                item_id = await repository.insert_item(conn, payload.model_dump())
            except asyncpg.UniqueViolationError as exc:
                raise ConflictError("Ya existe un item con ese nombre") from exc
            row = await repository.fetch_item(conn, item_id)
    logger.info("Item %s creado", item_id)
    return _item_from_record(row, currency)


async def update_item(
    pool: asyncpg.pool.Pool,
    item_id: int,
    payload: ItemUpdatePayload,
    *,
    currency: CurrencyConfig = DEFAULT_CURRENCY,
) -> ItemOut:
    fields = {key: value for key, value in payload.model_dump(exclude_unset=True).items() if value is not None}
    async with pool.acquire() as conn:
        async with conn.transaction():
            if await repository.fetch_item(conn, item_id) is None:
                raise ItemNotFoundError("Item no encontrado")
            if "type_id" in fields and not await repository.item_type_exists(conn, fields["type_id"]):
                raise ValidationError("Tipo de item no valido")
            try:
                await repository.update_item(conn, item_id, fields)
            except asyncpg.UniqueViolationError as exc:
                raise ConflictError("Ya existe un item con ese nombre") from exc
            row = await repository.fetch_item(conn, item_id)
    return _item_from_record(row, currency)


async def delete_item(pool: asyncpg.pool.Pool, item_id: int) -> None:
    async with pool.acquire() as conn:
        async with conn.transaction():
            if await repository.fetch_item(conn, item_id) is None:
                raise ItemNotFoundError("Item no encontrado")
            if await repository.count_item_usage(conn, item_id) > 0:
                raise IntegrityBlockedError(
                    "No se puede eliminar el item porque esta siendo usado en cotizaciones"
                )
            try:
                await repository.delete_item(conn, item_id)
            except asyncpg.ForeignKeyViolationError as exc:
                raise IntegrityBlockedError(
                    "No se puede eliminar el item porque esta siendo usado en cotizaciones"
                ) from exc
    logger.info("Item %s eliminado", item_id)
