"""
Seed the local database with a small demo data set.

Usage:
  python scripts/seed_demo_data.py

Creates a super admin, an admin and a customer, one project with the default
stage template and payment schedule, a vendor with two material orders and a
week of wage logs. Users are matched by email, so running it twice only adds
a second project when the first one was removed.
"""
import os
import sys
from datetime import timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass

from app.auth.security import get_password_hash
from app.db import Base, SessionLocal, engine
from app.models.models import Project, User
from app.services import payments, procurement, workforce
from app.services.catalog import Catalog
from app.services.projects import create_project
from app.services.time_rules import local_today


DEMO_PROJECT = "Sharma Residence"


def ensure_user(session, name: str, email: str, password: str, role: str, assigned_to=None) -> User:
    user = session.query(User).filter(User.email == email).first()
    if user:
        return user
    user = User(
        name=name,
        email=email,
        password_hash=get_password_hash(password),
        role=role,
        assigned_to_id=assigned_to.id if assigned_to else None,
    )
    session.add(user)
    session.commit()
    print(f"  + user {email} ({role})")
    return user


def main() -> None:
    Base.metadata.create_all(bind=engine)
    catalog = Catalog()
    session = SessionLocal()
    try:
        print("Seeding users...")
        ensure_user(session, "Super Admin", "superadmin@dsquare.in", "superadmin123", "SUPER_ADMIN")
        admin = ensure_user(session, "Site Admin", "admin@dsquare.in", "admin123", "ADMIN")
        customer = ensure_user(session, "Rahul Sharma", "customer@dsquare.in", "customer123", "CUSTOMER", assigned_to=admin)

        if session.query(Project).filter(Project.name == DEMO_PROJECT).first():
            print(f"Project {DEMO_PROJECT!r} already exists, nothing else to do.")
            return

        print("Seeding project and payment schedule...")
        today = local_today()
        project = create_project(
            session,
            {
                "name": DEMO_PROJECT,
                "client_id": customer.id,
                "location": "Sector 21, Gurugram",
                "start_date": today,
                "deadline": today + timedelta(days=300),
                "budget": 2500000.0,
            },
            catalog.stages,
            actor=admin,
        )
        payments.setup_milestones(session, project_id=project.id, schedule=catalog.milestones, actor=admin)

        print("Seeding vendor and material orders...")
        vendor = procurement.create_vendor(
            session,
            {"name": "Shree Cement Traders", "contact_person": "Mahesh", "phone": "9810000000", "specialty": "CEMENT"},
            actor=admin,
        )
        cement = procurement.create_material(
            session,
            {
                "project_id": project.id,
                "vendor_id": vendor.id,
                "item": "OPC 53 Cement",
                "material_type": "Cement",
                "quantity": 200,
                "unit": "BAGS",
                "unit_price": 380.0,
                "payment_due_date": today + timedelta(days=7),
            },
            actor=admin,
        )
        procurement.create_material(
            session,
            {
                "project_id": project.id,
                "vendor_id": vendor.id,
                "item": "TMT Steel 12mm",
                "material_type": "Steel",
                "quantity": 1.5,
                "unit": "TONNES",
                "unit_price": 62000.0,
            },
            actor=admin,
        )
        procurement.record_material_payment(session, cement.id, 40000.0, payment_mode="BANK_TRANSFER", actor=admin)

        print("Seeding wage logs...")
        for offset in range(6):
            day = today - timedelta(days=offset)
            workforce.create_log(
                session,
                {"project_id": project.id, "category": "MASON", "count": 4, "date": day},
                catalog.workers,
                actor=admin,
            )
            workforce.create_log(
                session,
                {"project_id": project.id, "category": "HELPER_MALE", "count": 6, "date": day, "hours_worked": 10},
                catalog.workers,
                actor=admin,
            )
        print("Done.")
    finally:
        session.close()


if __name__ == "__main__":
    main()
