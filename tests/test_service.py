from datetime import date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from cotizador import service
from cotizador.exceptions import (
    ClientExistsError,
    ClientNotFoundError,
    ConflictError,
    IntegrityBlockedError,
    ItemNotFoundError,
    QuotationNotFoundError,
    ValidationError,
)
from cotizador.schemas import (
    ClientCreatePayload,
    ClientUpdatePayload,
    ItemCreatePayload,
    ItemUpdatePayload,
    Pagination,
    QuotationCreatePayload,
    QuotationListFilters,
)

NOW = datetime(2025, 1, 2, 10, 30, 0)


def make_payload(cliente_id, lines):
    return QuotationCreatePayload(
        clienteId=cliente_id,
        items=[{"id": item_id, "quantity": qty} for item_id, qty in lines],
    )


def test_generate_quotation_id_format():
    assert service.generate_quotation_id(NOW) == "COT_20250102_103000"


async def test_create_quotation_computes_exact_total(pool, repo, catalog, store):
    payload = make_payload(catalog["cliente"], [(catalog["licencia"], 2), (catalog["cable"], 3)])

    quotation = await service.create_quotation(pool, payload, now=NOW)

    assert quotation.id == "COT_20250102_103000"
    assert quotation.total == Decimal("350.00")
    assert quotation.total_formateado == "$350.00"
    assert quotation.fecha == date(2025, 1, 2)
    assert quotation.cliente_nombre == "Acme"
    assert [(l.id, l.quantity, l.total) for l in quotation.items] == [
        (catalog["licencia"], 2, Decimal("200.00")),
        (catalog["cable"], 3, Decimal("150.00")),
    ]
    assert store.tables["cotizaciones"][quotation.id]["total"] == Decimal("350.00")
    assert len(store.tables["cotizacion_items"]) == 2


async def test_create_quotation_avoids_float_drift(pool, repo, store, catalog):
    cheap = store.add_item("Tornillo", "0.10", catalog["hardware"])
    quotation = await service.create_quotation(pool, make_payload(catalog["cliente"], [(cheap, 3)]), now=NOW)
    assert quotation.total == Decimal("0.30")


async def test_create_quotation_with_unknown_item_rolls_back(pool, repo, catalog, store):
    payload = make_payload(catalog["cliente"], [(catalog["licencia"], 1), (999, 1)])

    with pytest.raises(ItemNotFoundError):
        await service.create_quotation(pool, payload, now=NOW)

    assert store.tables["cotizaciones"] == {}
    assert store.tables["cotizacion_items"] == {}


async def test_create_quotation_with_unknown_client(pool, repo, catalog, store):
    with pytest.raises(ClientNotFoundError):
        await service.create_quotation(pool, make_payload(999, [(catalog["licencia"], 1)]), now=NOW)
    assert store.tables["cotizaciones"] == {}


async def test_create_quotation_rejects_empty_lines(pool, repo, catalog):
    payload = QuotationCreatePayload.model_construct(cliente_id=catalog["cliente"], items=[])
    with pytest.raises(ValidationError):
        await service.create_quotation(pool, payload, now=NOW)


async def test_create_quotation_retries_on_id_collision(pool, repo, catalog, store):
    store.add_quotation("COT_20250102_103000", catalog["cliente"], total=Decimal("1.00"))

    quotation = await service.create_quotation(
        pool, make_payload(catalog["cliente"], [(catalog["cable"], 1)]), now=NOW
    )

    assert quotation.id == "COT_20250102_103000_2"
    assert store.tables["cotizaciones"]["COT_20250102_103000"]["total"] == Decimal("1.00")


async def test_create_quotation_gives_up_after_max_attempts(pool, repo, catalog, store):
    base = "COT_20250102_103000"
    store.add_quotation(base, catalog["cliente"])
    for attempt in range(2, service.MAX_ID_ATTEMPTS + 1):
        store.add_quotation(f"{base}_{attempt}", catalog["cliente"])

    with pytest.raises(ConflictError):
        await service.create_quotation(pool, make_payload(catalog["cliente"], [(catalog["cable"], 1)]), now=NOW)
    assert len(store.tables["cotizaciones"]) == service.MAX_ID_ATTEMPTS


async def test_line_price_is_snapshotted(pool, repo, catalog, store):
    quotation = await service.create_quotation(
        pool, make_payload(catalog["cliente"], [(catalog["licencia"], 2)]), now=NOW
    )
    store.tables["items"][catalog["licencia"]]["price"] = Decimal("999.00")

    fetched = await service.get_quotation(pool, quotation.id)

    assert fetched.items[0].price == Decimal("100.00")
    assert fetched.items[0].total == Decimal("200.00")
    assert fetched.total == Decimal("200.00")


async def test_get_quotation_returns_none_when_absent(pool, repo):
    assert await service.get_quotation(pool, "COT_19990101_000000") is None


async def test_delete_quotation_cascades_lines(pool, repo, catalog, store):
    quotation = await service.create_quotation(
        pool, make_payload(catalog["cliente"], [(catalog["licencia"], 1), (catalog["cable"], 1)]), now=NOW
    )

    await service.delete_quotation(pool, quotation.id)

    assert await service.get_quotation(pool, quotation.id) is None
    assert store.tables["cotizacion_items"] == {}
    with pytest.raises(QuotationNotFoundError):
        await service.delete_quotation(pool, quotation.id)


async def test_list_quotations_paginates_and_filters(pool, repo, catalog, store):
    other = store.add_client("Zeta Corp")
    for day in range(1, 4):
        store.add_quotation(f"COT_202501{day:02d}_090000", catalog["cliente"], fecha=date(2025, 1, day))
    store.add_quotation("COT_20250105_090000", other, fecha=date(2025, 1, 5))

    page = await service.list_quotations(pool, QuotationListFilters(), Pagination(page=1, limit=2))
    assert [q.id for q in page.items] == ["COT_20250105_090000", "COT_20250103_090000"]
    assert page.pagination.total == 4
    assert page.pagination.totalPages == 2
    assert page.pagination.hasNext and not page.pagination.hasPrev

    by_name = await service.list_quotations(pool, QuotationListFilters(search="zeta"), Pagination())
    assert [q.id for q in by_name.items] == ["COT_20250105_090000"]

    by_client = await service.list_quotations(
        pool, QuotationListFilters(cliente_id=catalog["cliente"]), Pagination(page=2, limit=2)
    )
    assert [q.id for q in by_client.items] == ["COT_20250101_090000"]
    assert by_client.pagination.hasPrev and not by_client.pagination.hasNext


# ---- Clientes ----

async def test_create_client_rejects_duplicate_email(pool, repo, catalog):
    payload = ClientCreatePayload(nombre="Otra Acme", email="compras@acme.mx")
    with pytest.raises(ClientExistsError):
        await service.create_client(pool, payload)


async def test_update_client_keeps_unset_fields(pool, repo, catalog):
    updated = await service.update_client(pool, catalog["cliente"], ClientUpdatePayload(telefono="+52 55 1234 5678"))
    assert updated.nombre == "Acme"
    assert updated.email == "compras@acme.mx"
    assert updated.telefono == "+52 55 1234 5678"


async def test_update_unknown_client(pool, repo):
    with pytest.raises(ClientNotFoundError):
        await service.update_client(pool, 42, ClientUpdatePayload(nombre="Nadie"))


async def test_delete_client_blocked_by_quotations(pool, repo, catalog, store):
    store.add_quotation("COT_20250101_090000", catalog["cliente"])
    with pytest.raises(IntegrityBlockedError):
        await service.delete_client(pool, catalog["cliente"])
    assert catalog["cliente"] in store.tables["clientes"]


async def test_delete_client_without_quotations(pool, repo, catalog, store):
    await service.delete_client(pool, catalog["cliente"])
    assert store.tables["clientes"] == {}
    with pytest.raises(ClientNotFoundError):
        await service.delete_client(pool, catalog["cliente"])


async def test_client_detail_aggregates_quotations(pool, repo, catalog, store):
    store.add_quotation("COT_20250101_090000", catalog["cliente"], fecha=date(2025, 1, 1), total=Decimal("10.00"))
    store.add_quotation("COT_20250301_090000", catalog["cliente"], fecha=date(2025, 3, 1), total=Decimal("5.50"))

    detail = await service.get_client_detail(pool, catalog["cliente"])

    assert detail.total_cotizaciones == 2
    assert detail.monto_total == Decimal("15.50")
    assert detail.primera_cotizacion == date(2025, 1, 1)
    assert detail.ultima_cotizacion == date(2025, 3, 1)


async def test_top_clients_skips_clients_without_quotations(pool, repo, catalog, store):
    big = store.add_client("Grande")
    store.add_quotation("COT_20250101_090000", catalog["cliente"], total=Decimal("10.00"))
    store.add_quotation("COT_20250102_090000", big, total=Decimal("900.00"))
    store.add_client("Sin cotizaciones")

    top = await service.top_clients(pool, limit=5)

    assert [c.nombre for c in top] == ["Grande", "Acme"]


async def test_autocomplete_requires_two_characters(pool, repo, catalog):
    with pytest.raises(ValidationError):
        await service.autocomplete_clients(pool, "a")
    matches = await service.autocomplete_clients(pool, "acm")
    assert [c.nombre for c in matches] == ["Acme"]


async def test_client_quotations_for_unknown_client(pool, repo):
    with pytest.raises(ClientNotFoundError):
        await service.list_client_quotations(pool, 7, Pagination())


# ---- Items ----

async def test_create_item_formats_price(pool, repo, catalog):
    item = await service.create_item(
        pool, ItemCreatePayload(name="Monitor", price=Decimal("3200.5"), type_id=catalog["hardware"])
    )
    assert item.type_name == "Hardware"
    assert item.price_formatted == "$3,200.50"


async def test_create_item_with_unknown_type(pool, repo, catalog, store):
    with pytest.raises(ValidationError):
        await service.create_item(pool, ItemCreatePayload(name="Monitor", price=Decimal("10"), type_id=99))
    assert len(store.tables["items"]) == 2


async def test_update_item_rejects_duplicate_name(pool, repo, catalog):
    with pytest.raises(ConflictError):
        await service.update_item(pool, catalog["cable"], ItemUpdatePayload(name="Licencia"))


async def test_delete_item_blocked_when_used(pool, repo, catalog, store):
    await service.create_quotation(pool, make_payload(catalog["cliente"], [(catalog["cable"], 1)]), now=NOW)

    with pytest.raises(IntegrityBlockedError):
        await service.delete_item(pool, catalog["cable"])

    await service.delete_item(pool, catalog["licencia"])
    with pytest.raises(ItemNotFoundError):
        await service.get_item(pool, catalog["licencia"])


async def test_create_quotation_rejects_total_above_column_limit(pool, repo, catalog, store):
    server = store.add_item("Servidor", "25000.00", catalog["hardware"])
    payload = make_payload(catalog["cliente"], [(server, 1_000_000)])

    with pytest.raises(ValidationError):
        await service.create_quotation(pool, payload, now=NOW)

    assert store.tables["cotizaciones"] == {}
    assert store.tables["cotizacion_items"] == {}


async def test_create_quotation_uses_given_time_zone(pool, repo, catalog):
    tz = ZoneInfo("Pacific/Kiritimati")
    before = datetime.now(tz).date()

    quotation = await service.create_quotation(
        pool, make_payload(catalog["cliente"], [(catalog["cable"], 1)]), tz=tz
    )

    assert quotation.fecha in (before, datetime.now(tz).date())
    assert quotation.id.startswith(f"COT_{quotation.fecha:%Y%m%d}_")
