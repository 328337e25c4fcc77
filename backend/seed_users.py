"""
Database seeding script for a fresh koperasi.

Creates one koperasi, its ADMIN (pengurus) account and a first delivery
driver. Members register themselves via POST /v1/auth/register.

Run with ``python -m backend.seed_users`` after the database is reachable.
"""

import asyncio

from sqlalchemy import select

from backend.app.db.session import AsyncSessionLocal, engine, Base
from backend.app.models.koperasi import Koperasi
from backend.app.models.user import User
from backend.app.models.driver import Driver
from backend.app.models.enums import UserRole
from backend.app.core.security import get_password_hash


async def seed():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting seeding...")

        result = await db.execute(select(User).where(User.username == "admin"))
        if result.scalar_one_or_none():
            print("ℹ️  ADMIN user already exists, skipping seeding")
            return

        koperasi = Koperasi(code="KOP-DEMO", name="Koperasi Demo Sejahtera", is_active=True)
        db.add(koperasi)
        await db.flush()

        db.add(User(
            email="admin@koperasi.local",
            username="admin",
            full_name="Pengurus Koperasi",
            hashed_password=get_password_hash("admin123"),
            role=UserRole.ADMIN,
            tenant_id=koperasi.id,
            is_active=True
        ))

        db.add(Driver(
            tenant_id=koperasi.id,
            full_name="Kurir Demo",
            phone="081200001111",
            vehicle_type="motorcycle",
            license_plate="B 1000 KOP",
            coverage_areas=[]
        ))

        await db.commit()

        print("✅ Created koperasi KOP-DEMO, ADMIN (admin / admin123) and one driver")
        print("\nNote: members register via POST /v1/auth/register")


if __name__ == "__main__":
    asyncio.run(seed())
