#!/usr/bin/env python3
"""
Fill a development warehouse with fake sales and cash-consolidation rows.

Usage: DW_DB_URI=sqlite:///dw.db python scripts/seed_warehouse.py
"""

import random
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy import Column, Date, DateTime, Integer, MetaData, Numeric, String, Table

from masterdash.database import init_engine

# --------------------------------------------------------------------
# CONFIG
# --------------------------------------------------------------------
NUM_SALES = 2000
NUM_CONSOLIDATIONS = 600
DAYS_BACK = 365

BRANCHES = {
    "Norte": ["Centro", "Tucumán", "Salta"],
    "Sur": ["Neuquén", "Bariloche", "Trelew"],
    "Cuyo": ["Mendoza", "San Juan"],
}

# --------------------------------------------------------------------
# SETUP
# --------------------------------------------------------------------
fake = Faker("es_AR")
random.seed(42)
Faker.seed(42)

metadata = MetaData()

# In production vw_ventas is a view; a plain table stands in for development.
ventas = Table(
    "vw_ventas", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("fecha", Date, nullable=False),
    Column("region", String(50), nullable=False),
    Column("sucursal", String(100), nullable=False),
    Column("monto", Numeric(14, 2), nullable=False),
)

consolidaciones = Table(
    "cajas_ETL_Reporte_Consolidaciones", metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("FECHA", DateTime, nullable=False),
    Column("USUARIO", String(50), nullable=False),
    Column("NOMBRE_COMPLETO", String(200), nullable=False),
    Column("CENTRO_COSTOS", Integer, nullable=False),
    Column("SUCURSAL", String(100), nullable=False),
)


# --------------------------------------------------------------------
# HELPERS
# --------------------------------------------------------------------
def random_datetime_within(days_back=DAYS_BACK):
    now = datetime.utcnow()
    delta = timedelta(days=random.randint(0, days_back), seconds=random.randint(0, 86400))
    return now - delta


def random_branch():
    region = random.choice(list(BRANCHES))
    return region, random.choice(BRANCHES[region])


# --------------------------------------------------------------------
# SEED FUNCTIONS
# --------------------------------------------------------------------
def seed_sales(conn, n=NUM_SALES):
    rows = []
    for _ in range(n):
        region, sucursal = random_branch()
        rows.append(
            {
                "fecha": random_datetime_within().date(),
                "region": region,
                "sucursal": sucursal,
                "monto": round(random.uniform(500, 250_000), 2),
            }
        )
    conn.execute(ventas.insert(), rows)


def seed_consolidations(conn, n=NUM_CONSOLIDATIONS):
    cashiers = [(fake.user_name(), fake.name()) for _ in range(25)]
    rows = []
    for _ in range(n):
        usuario, nombre = random.choice(cashiers)
        _, sucursal = random_branch()
        rows.append(
            {
                "FECHA": random_datetime_within(),
                "USUARIO": usuario,
                "NOMBRE_COMPLETO": nombre,
                "CENTRO_COSTOS": random.randint(100, 140),
                # the source system pads branch names
                "SUCURSAL": sucursal.ljust(20),
            }
        )
    conn.execute(consolidaciones.insert(), rows)


# --------------------------------------------------------------------
# MAIN
# --------------------------------------------------------------------
def main():
    engine = init_engine("DW_DB_URI")
    metadata.create_all(engine)
    with engine.begin() as conn:
        print("Seeding vw_ventas...")
        seed_sales(conn)
        print("Seeding cajas_ETL_Reporte_Consolidaciones...")
        seed_consolidations(conn)
    engine.dispose()
    print("Done.")


if __name__ == "__main__":
    main()
