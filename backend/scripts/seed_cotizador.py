import asyncio
import os
from decimal import Decimal

import asyncpg
from dotenv import load_dotenv


ITEM_TYPES_SEED = ["Software", "Hardware", "Servicios", "Licencias"]

ITEMS_SEED = [
    {"name": "Windows 10 Pro", "type": "Software", "price": Decimal("1500.00")},
    {"name": "Licencia Office 365", "type": "Licencias", "price": Decimal("800.00")},
    {"name": "Servidor Dell R740", "type": "Hardware", "price": Decimal("25000.00")},
    {"name": "Mantenimiento mensual", "type": "Servicios", "price": Decimal("5000.00")},
    {"name": "Antivirus Enterprise", "type": "Software", "price": Decimal("1200.00")},
    {"name": "Laptop HP EliteBook", "type": "Hardware", "price": Decimal("18000.00")},
]

CLIENTS_SEED = [
    {"nombre": "Empresa ABC S.A. de C.V."},
    {"nombre": "Tiendas XYZ México"},
    {"nombre": "Servicios Corporativos LMN"},
    {"nombre": "Consultoría Tech Solutions"},
]


async def seed_item_types(conn: asyncpg.Connection) -> dict:
    type_ids = {}
    for name in ITEM_TYPES_SEED:
        type_id = await conn.fetchval(
            """
            INSERT INTO item_types (name) VALUES ($1)
            ON CONFLICT (name) DO UPDATE SET name = EXCLUDED.name
            RETURNING id
            """,
            name,
        )
        type_ids[name] = type_id
        print(f"Tipo '{name}' listo (id {type_id}).")
    return type_ids


async def seed_items(conn: asyncpg.Connection, type_ids: dict) -> None:
    for item in ITEMS_SEED:
        exists = await conn.fetchval("SELECT id FROM items WHERE name = $1", item["name"])
        if exists:
            print(f"  Item '{item['name']}' ya existe, omitiendo.")
            continue
        await conn.execute(
            "INSERT INTO items (name, type_id, price) VALUES ($1, $2, $3)",
            item["name"],
            type_ids[item["type"]],
            item["price"],
        )
        print(f"  Item '{item['name']}' creado.")


async def seed_clients(conn: asyncpg.Connection) -> None:
    for client in CLIENTS_SEED:
        exists = await conn.fetchval("SELECT id FROM clientes WHERE nombre = $1", client["nombre"])
        if exists:
            print(f"Cliente '{client['nombre']}' ya existe, omitiendo.")
            continue
        await conn.execute("INSERT INTO clientes (nombre) VALUES ($1)", client["nombre"])
        print(f"Cliente '{client['nombre']}' creado.")


async def main() -> None:
    load_dotenv()
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise SystemExit("DATABASE_URL no esta definido. Configura tus variables de entorno.")

    conn = await asyncpg.connect(database_url)
    try:
        async with conn.transaction():
            type_ids = await seed_item_types(conn)
            await seed_items(conn, type_ids)
            await seed_clients(conn)
    finally:
        await conn.close()


if __name__ == "__main__":
    asyncio.run(main())
