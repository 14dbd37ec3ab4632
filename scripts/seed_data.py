"""
Data Seeder for Meter.
Populates the database with realistic data for testing and demo purposes.
"""

import asyncio
import random
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from meter.domain.models import Client, InvoiceSettings
from meter.infra.config import get_settings
from meter.infra.db import dispose_engine, init_db
from meter.infra.repository import (
    ClientRepository, ProjectRepository, SettingsRepository, TimeEntryRepository,
)
from meter.services.entry_recorder import EntryRecorder


async def reset_database():
    """Delete the existing database file to ensure a fresh seed"""
    db_path = get_settings().data_dir / 'meter.db'
    if db_path.exists():
        print(f"Removing existing database at: {db_path}")
        try:
            db_path.unlink()
            print("Database removed.")
        except PermissionError:
            print("ERROR: Could not remove database. It might be in use.")
            sys.exit(1)
    else:
        print(f"No existing database found at: {db_path}")


async def seed(year: int, month: int):
    await reset_database()
    print("Starting data seeding...")
    await init_db()

    client_repo = ClientRepository()
    project_repo = ProjectRepository()
    settings_repo = SettingsRepository()
    recorder = EntryRecorder(TimeEntryRepository())

    # 1. Business details and a client
    await settings_repo.save_invoice_settings(InvoiceSettings(
        business_name="Example Consulting",
        address_street="1 Main Street",
        address_city="Springfield",
        address_postal_code="12345",
        email="billing@example.com",
        payment_instructions="Bank transfer to IBAN XX00 0000 0000 0000",
    ))
    acme = await client_repo.create(Client(name="Acme Corp", contact_person="Jane Doe",
                                           email="ap@acme.example"))

    # 2. Projects with rates
    rates = {"Acme Website": Decimal("120"), "Acme API": Decimal("150"), "Internal Tools": None}
    for name, rate in rates.items():
        print(f"Creating project: {name}")
        if rate is None:
            await project_repo.get_or_create(name)
        else:
            await project_repo.set_rate(name, rate)
    await project_repo.assign_client("Acme Website", acme.id)
    await project_repo.assign_client("Acme API", acme.id)

    # 3. Weekday entries for the month
    # Pattern: a morning block and an afternoon block
    descriptions = ["Feature work", "Code review", "Bug fixing", "Meetings", "Planning"]
    day = datetime(year, month, 1, tzinfo=timezone.utc)
    count = 0
    while day.month == month:
        if day.weekday() < 5:
            for hour in (9, 14):
                project = random.choice(list(rates))
                minutes = random.randint(60, 180)
                ended_at = day.replace(hour=hour) + timedelta(minutes=minutes)
                await recorder.record(project, random.choice(descriptions),
                                      timedelta(minutes=minutes), ended_at=ended_at)
                count += 1
        day += timedelta(days=1)

    await dispose_engine()
    print(f"Seeding complete: {count} entries.")


if __name__ == "__main__":
    now = datetime.now(timezone.utc)
    asyncio.run(seed(now.year, now.month))
