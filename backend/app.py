import os
import logging
from typing import Any, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import asyncpg
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from cotizador import db as cotizador_db
from cotizador import service as cotizador_service
from cotizador.exceptions import (
    ClientExistsError,
    ClientNotFoundError,
    ConflictError,
    CotizadorError,
    IntegrityBlockedError,
    ItemNotFoundError,
    NotFoundError,
    QuotationNotFoundError,
    ValidationError,
)
from cotizador.money import CurrencyConfig
from cotizador.pdf import QuotationPdfRenderer
from cotizador.schemas import (
    ClientCreatePayload,
    ClientDetail,
    ClientLookup,
    ClientOut,
    ClientQuotationListResponse,
    ClientTopOut,
    ClientUpdatePayload,
    ItemCreatePayload,
    ItemOut,
    ItemTypeOut,
    ItemUpdatePayload,
    MessageResponse,
    Pagination,
    QuotationCreatePayload,
    QuotationDetail,
    QuotationListFilters,
    QuotationListResponse,
)

load_dotenv()

logger = logging.getLogger("cotizador")
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[COTIZADOR] %(message)s"))
    logger.addHandler(handler)
logger.setLevel(logging.INFO)


def coerce_int(value: Any, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def coerce_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes"}


def resolve_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        logger.warning("Zona horaria %s no encontrada; usando UTC", name)
        return ZoneInfo("UTC")


# ---- Config ----
DATABASE_URL = os.getenv("DATABASE_URL", "").strip()
COTIZADOR_DB_MIN_POOL_SIZE = coerce_int(os.getenv("COTIZADOR_DB_MIN_POOL_SIZE"), 1)
COTIZADOR_DB_MAX_POOL_SIZE = coerce_int(os.getenv("COTIZADOR_DB_MAX_POOL_SIZE"), 5)
COTIZADOR_DB_TIMEOUT = coerce_int(os.getenv("COTIZADOR_DB_TIMEOUT"), 10)
COTIZADOR_TZ = resolve_timezone(os.getenv("COTIZADOR_TZ", "America/Mexico_City").strip() or "America/Mexico_City")
COTIZADOR_DEBUG = coerce_flag(os.getenv("COTIZADOR_DEBUG"))
FRONTEND_ORIGIN = os.getenv("FRONTEND_ORIGIN", "*").strip()

CURRENCY = CurrencyConfig(
    locale=os.getenv("COTIZADOR_LOCALE", "es_MX").strip() or "es_MX",
    currency_code=os.getenv("COTIZADOR_CURRENCY", "MXN").strip().upper() or "MXN",
)
PDF_RENDERER = QuotationPdfRenderer(
    CURRENCY,
    repeat_table_header=coerce_flag(os.getenv("COTIZADOR_REPEAT_TABLE_HEADER")),
)


def parse_allowed_origins(raw: str) -> List[str]:
    if not raw:
        return ["*"]
    parts = [item.strip() for item in raw.split(",") if item.strip()]
    return parts or ["*"]


ALLOWED_CORS_ORIGINS = parse_allowed_origins(FRONTEND_ORIGIN)
ALLOW_CREDENTIALS = "*" not in ALLOWED_CORS_ORIGINS
if not ALLOW_CREDENTIALS:
    logger.warning("CORS credentials disabled because '*' is present in FRONTEND_ORIGIN")

app = FastAPI(title="Cotizador")
app.state.pool = None

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_CORS_ORIGINS,
    allow_credentials=ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)


def internal_error(message: str, exc: Exception) -> HTTPException:
    detail = f"{message}: {exc}" if COTIZADOR_DEBUG else message
    return HTTPException(status_code=500, detail=detail)


def get_pool(request: Request) -> asyncpg.pool.Pool:
    pool = getattr(request.app.state, "pool", None)
    if pool is None:
        raise HTTPException(status_code=503, detail="Servicio de cotizaciones no disponible")
    return pool


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Error de validacion", "detalles": jsonable_encoder(exc.errors())},
    )


@app.on_event("startup")
async def init_cotizador_database_pool():
    if not DATABASE_URL:
        logger.warning("DATABASE_URL no definido. Endpoints del cotizador permaneceran deshabilitados.")
        app.state.pool = None
        return
    try:
        app.state.pool = await cotizador_db.init_pool(
            DATABASE_URL,
            min_size=COTIZADOR_DB_MIN_POOL_SIZE,
            max_size=COTIZADOR_DB_MAX_POOL_SIZE,
            timeout=COTIZADOR_DB_TIMEOUT,
        )
        logger.info("Pool de base de datos para cotizador inicializado.")
    except Exception as exc:
        app.state.pool = None
        logger.error("No se pudo inicializar el pool de cotizador: %s", exc)


@app.on_event("shutdown")
async def shutdown_cotizador_database_pool():
    pool = app.state.pool
    try:
        await cotizador_db.close_pool(pool)
        if pool is not None:
            logger.info("Pool de base de datos para cotizador cerrado.")
    finally:
        app.state.pool = None


@app.get("/health")
async def health_endpoint(request: Request):
    pool = getattr(request.app.state, "pool", None)
    database = await cotizador_db.ping(pool) if pool is not None else False
    return {"ok": True, "database": database}


# ---- Cotizaciones API ----

@app.post("/api/cotizaciones", response_model=QuotationDetail, status_code=201)
async def create_quotation_endpoint(
    payload: QuotationCreatePayload,
    pool: asyncpg.pool.Pool = Depends(get_pool),
):
    try:
        return await cotizador_service.create_quotation(pool, payload, tz=COTIZADOR_TZ, currency=CURRENCY)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except CotizadorError as exc:
        logger.warning("Error creando cotizacion: %s", exc)
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Fallo inesperado al crear cotizacion: %s", exc)
        raise internal_error("Error al crear la cotizacion", exc) from exc


@app.get("/api/cotizaciones", response_model=QuotationListResponse)
async def list_quotations_endpoint(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=120),
    pool: asyncpg.pool.Pool = Depends(get_pool),
):
    filters = QuotationListFilters(search=search or None)
    try:
        return await cotizador_service.list_quotations(pool, filters, Pagination(page=page, limit=limit))
    except Exception as exc:
        logger.exception("Fallo inesperado al listar cotizaciones: %s", exc)
        raise internal_error("Error al obtener las cotizaciones", exc) from exc


@app.get("/api/cotizaciones/cliente/{cliente_id}", response_model=QuotationListResponse)
async def list_client_quotations_endpoint(
    cliente_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    pool: asyncpg.pool.Pool = Depends(get_pool),
):
    filters = QuotationListFilters(cliente_id=cliente_id)
    try:
        return await cotizador_service.list_quotations(pool, filters, Pagination(page=page, limit=limit))
    except Exception as exc:
        logger.exception("Fallo inesperado al listar cotizaciones del cliente %s: %s", cliente_id, exc)
        raise internal_error("Error al obtener las cotizaciones del cliente", exc) from exc


@app.get("/api/cotizaciones/{quotation_id}", response_model=QuotationDetail)
async def get_quotation_endpoint(
    quotation_id: str,
    pool: asyncpg.pool.Pool = Depends(get_pool),
):
    try:
        quotation = await cotizador_service.get_quotation(pool, quotation_id, currency=CURRENCY)
    except Exception as exc:
        logger.exception("Fallo inesperado al obtener cotizacion %s: %s", quotation_id, exc)
        raise internal_error("Error al obtener la cotizacion", exc) from exc
    if quotation is None:
        raise HTTPException(status_code=404, detail="Cotizacion no encontrada")
    return quotation


@app.delete("/api/cotizaciones/{quotation_id}", response_model=MessageResponse)
async def delete_quotation_endpoint(
    quotation_id: str,
    pool: asyncpg.pool.Pool = Depends(get_pool),
):
    try:
        await cotizador_service.delete_quotation(pool, quotation_id)
    except QuotationNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Fallo inesperado al eliminar cotizacion %s: %s", quotation_id, exc)
        raise internal_error("Error al eliminar la cotizacion", exc) from exc
    return {"message": "Cotizacion eliminada exitosamente"}


@app.get("/api/cotizaciones/{quotation_id}/pdf")
async def quotation_pdf_endpoint(
    quotation_id: str,
    pool: asyncpg.pool.Pool = Depends(get_pool),
):
    try:
        quotation = await cotizador_service.get_quotation(pool, quotation_id, currency=CURRENCY)
    except Exception as exc:
        logger.exception("Fallo inesperado al obtener cotizacion %s: %s", quotation_id, exc)
        raise internal_error("Error al generar el PDF", exc) from exc
    if quotation is None:
        raise HTTPException(status_code=404, detail="Cotizacion no encontrada")
    try:
        pdf_bytes = await run_in_threadpool(PDF_RENDERER.render, quotation)
    except Exception as exc:
        logger.exception("Fallo generando PDF de cotizacion %s: %s", quotation_id, exc)
        raise internal_error("Error al generar el PDF", exc) from exc
    headers = {
        "Content-Disposition": f'attachment; filename="cotizacion_{quotation_id}.pdf"',
        "Content-Length": str(len(pdf_bytes)),
    }
    return Response(content=pdf_bytes, media_type="application/pdf", headers=headers)


# ---- Clientes API ----

@app.get("/api/clientes", response_model=List[ClientOut])
async def list_clients_endpoint(pool: asyncpg.pool.Pool = Depends(get_pool)):
    try:
        return await cotizador_service.list_clients(pool)
    except Exception as exc:
        logger.exception("Fallo inesperado al listar clientes: %s", exc)
        raise internal_error("Error al obtener los clientes", exc) from exc


@app.get("/api/clientes/stats/top", response_model=List[ClientTopOut])
async def top_clients_endpoint(
    limit: int = Query(10, ge=1, le=100),
    pool: asyncpg.pool.Pool = Depends(get_pool),
):
    try:
        return await cotizador_service.top_clients(pool, limit=limit)
    except Exception as exc:
        logger.exception("Fallo inesperado al obtener estadisticas de clientes: %s", exc)
        raise internal_error("Error al obtener estadisticas de clientes", exc) from exc


@app.get("/api/clientes/search/autocomplete", response_model=List[ClientLookup])
async def autocomplete_clients_endpoint(
    q: Optional[str] = Query(None),
    pool: asyncpg.pool.Pool = Depends(get_pool),
):
    try:
        return await cotizador_service.autocomplete_clients(pool, q or "")
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Fallo inesperado en la busqueda de clientes: %s", exc)
        raise internal_error("Error en la busqueda de clientes", exc) from exc


@app.get("/api/clientes/{cliente_id}", response_model=ClientDetail)
async def get_client_endpoint(cliente_id: int, pool: asyncpg.pool.Pool = Depends(get_pool)):
    try:
        return await cotizador_service.get_client_detail(pool, cliente_id)
    except ClientNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Fallo inesperado al obtener cliente %s: %s", cliente_id, exc)
        raise internal_error("Error al obtener el cliente", exc) from exc


@app.post("/api/clientes", response_model=ClientOut, status_code=201)
async def create_client_endpoint(
    payload: ClientCreatePayload,
    pool: asyncpg.pool.Pool = Depends(get_pool),
):
    try:
        return await cotizador_service.create_client(pool, payload)
    except ClientExistsError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Fallo inesperado al crear cliente: %s", exc)
        raise internal_error("Error al crear el cliente", exc) from exc


@app.put("/api/clientes/{cliente_id}", response_model=ClientOut)
async def update_client_endpoint(
    cliente_id: int,
    payload: ClientUpdatePayload,
    pool: asyncpg.pool.Pool = Depends(get_pool),
):
    try:
        return await cotizador_service.update_client(pool, cliente_id, payload)
    except ClientNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ClientExistsError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Fallo inesperado al actualizar cliente %s: %s", cliente_id, exc)
        raise internal_error("Error al actualizar el cliente", exc) from exc


@app.delete("/api/clientes/{cliente_id}", response_model=MessageResponse)
async def delete_client_endpoint(cliente_id: int, pool: asyncpg.pool.Pool = Depends(get_pool)):
    try:
        await cotizador_service.delete_client(pool, cliente_id)
    except ClientNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except IntegrityBlockedError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Fallo inesperado al eliminar cliente %s: %s", cliente_id, exc)
        raise internal_error("Error al eliminar el cliente", exc) from exc
    return {"message": "Cliente eliminado exitosamente"}


@app.get("/api/clientes/{cliente_id}/cotizaciones", response_model=ClientQuotationListResponse)
async def client_quotations_endpoint(
    cliente_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    pool: asyncpg.pool.Pool = Depends(get_pool),
):
    try:
        return await cotizador_service.list_client_quotations(pool, cliente_id, Pagination(page=page, limit=limit))
    except ClientNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Fallo inesperado al listar cotizaciones del cliente %s: %s", cliente_id, exc)
        raise internal_error("Error al obtener las cotizaciones del cliente", exc) from exc


# ---- Items API ----

@app.get("/api/items", response_model=List[ItemOut])
async def list_items_endpoint(pool: asyncpg.pool.Pool = Depends(get_pool)):
    try:
        return await cotizador_service.list_items(pool, currency=CURRENCY)
    except Exception as exc:
        logger.exception("Fallo inesperado al listar items: %s", exc)
        raise internal_error("Error al obtener los items", exc) from exc


@app.get("/api/items/tipos", response_model=List[ItemTypeOut])
async def list_item_types_endpoint(pool: asyncpg.pool.Pool = Depends(get_pool)):
    try:
        return await cotizador_service.list_item_types(pool)
    except Exception as exc:
        logger.exception("Fallo inesperado al listar tipos de items: %s", exc)
        raise internal_error("Error al obtener tipos de items", exc) from exc


@app.get("/api/items/{item_id}", response_model=ItemOut)
async def get_item_endpoint(item_id: int, pool: asyncpg.pool.Pool = Depends(get_pool)):
    try:
        return await cotizador_service.get_item(pool, item_id, currency=CURRENCY)
    except ItemNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Fallo inesperado al obtener item %s: %s", item_id, exc)
        raise internal_error("Error al obtener el item", exc) from exc


@app.post("/api/items", response_model=ItemOut, status_code=201)
async def create_item_endpoint(
    payload: ItemCreatePayload,
    pool: asyncpg.pool.Pool = Depends(get_pool),
):
    try:
        return await cotizador_service.create_item(pool, payload, currency=CURRENCY)
    except (ValidationError, ConflictError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Fallo inesperado al crear item: %s", exc)
        raise internal_error("Error al crear el item", exc) from exc


@app.put("/api/items/{item_id}", response_model=ItemOut)
async def update_item_endpoint(
    item_id: int,
    payload: ItemUpdatePayload,
    pool: asyncpg.pool.Pool = Depends(get_pool),
):
    try:
        return await cotizador_service.update_item(pool, item_id, payload, currency=CURRENCY)
    except ItemNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (ValidationError, ConflictError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Fallo inesperado al actualizar item %s: %s", item_id, exc)
        raise internal_error("Error al actualizar el item", exc) from exc


@app.delete("/api/items/{item_id}", response_model=MessageResponse)
async def delete_item_endpoint(item_id: int, pool: asyncpg.pool.Pool = Depends(get_pool)):
    try:
        await cotizador_service.delete_item(pool, item_id)
    except ItemNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except IntegrityBlockedError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Fallo inesperado al eliminar item %s: %s", item_id, exc)
        raise internal_error("Error al eliminar el item", exc) from exc
    return {"message": "Item eliminado exitosamente"}
