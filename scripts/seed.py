"""Seed script — populates the recipient directories with sample data for development.

Usage: python scripts/seed.py
"""

from __future__ import annotations

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session

from consentlink.config import settings
from consentlink.models.recipient import Client, JobseekerProfile

sync_url = settings.DATABASE_URL.replace("postgresql+asyncpg://", "postgresql+psycopg2://")
engine = create_engine(sync_url)


CLIENTS = [
    ("Northwind Logistics", "hr@northwind.example.com"),
    ("Contoso Health", "people@contoso.example.com"),
    ("Fabrikam Retail", None),
]

JOBSEEKERS = [
    ("Ada", "Okafor", "ada.okafor@example.com"),
    ("Mateo", "Lindqvist", "mateo.l@example.com"),
    ("Priya", "Raman", "priya.raman@example.com"),
    ("Jonas", "Weber", None),
]


def seed():
    with Session(engine) as db:
        # Check if already seeded
        existing = db.execute(text("SELECT count(*) FROM clients")).scalar()
        if existing > 0:
            print(f"Database already has {existing} client(s). Skipping seed.")
            return

        clients = [Client(company_name=name, email_address1=email) for name, email in CLIENTS]
        jobseekers = [
            JobseekerProfile(first_name=first, last_name=last, email=email)
            for first, last, email in JOBSEEKERS
        ]
        db.add_all(clients + jobseekers)
        db.commit()

        print(f"Created {len(clients)} clients:")
        for c in clients:
            print(f"  {c.id}  {c.company_name}  <{c.email_address1 or 'no email'}>")
        print(f"Created {len(jobseekers)} jobseeker profiles:")
        for j in jobseekers:
            print(f"  {j.id}  {j.first_name} {j.last_name}  <{j.email or 'no email'}>")


if __name__ == "__main__":
    seed()
