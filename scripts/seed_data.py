"""
Development seed: default leave types, one admin, one manager and two
employees reporting to the manager, with balances for the current year.

    python scripts/seed_data.py
"""
import sys
import os
import logging
from datetime import date

from sqlalchemy import select

# Ensure we can import app modules
sys.path.append(os.getcwd())

from app.database import SessionLocal, init_db
from app.models.user import User, UserRole
from app.services.auth import create_access_token
from app.services.leave_balance import BalanceLedger
from app.services.leave_types import LeaveTypeRegistry

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


def create_user(db, email, full_name, role, manager=None, department=None):
    # Check if user already exists to avoid unique constraint errors
    existing_user = db.scalar(select(User).where(User.email == email))
    if existing_user:
        logger.info(f"User {email} already exists. Skipping.")
        return existing_user

    user = User(
        email=email,
        full_name=full_name,
        role=role,
        manager_id=manager.id if manager else None,
        department=department,
        is_active=True
    )
    db.add(user)
    db.commit()
    logger.info(f"Created {role.value} -> {email}")
    return user


def main():
    init_db()
    db = SessionLocal()
    try:
        LeaveTypeRegistry(db).seed_defaults()

        admin = create_user(db, "admin@example.com", "Avery Admin", UserRole.ADMIN, department="HR")
        manager = create_user(db, "manager@example.com", "Morgan Manager", UserRole.MANAGER, department="Engineering")
        employees = [
            create_user(db, "employee@example.com", "Emery Employee", UserRole.EMPLOYEE, manager, "Engineering"),
            create_user(db, "employee2@example.com", "Rowan Employee", UserRole.EMPLOYEE, manager, "Engineering"),
        ]

        ledger = BalanceLedger(db)
        year = date.today().year
        with ledger.transaction("seed_balances"):
            for user in [admin, manager, *employees]:
                ledger.ensure_initialized(user.id, year)

        for user in [admin, manager, *employees]:
            token = create_access_token({"sub": str(user.id), "role": user.role.value})
            logger.info(f"{user.email}: {token}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
