from datetime import date, datetime
from types import SimpleNamespace

import pytest

from app.services import procurement, reporting, workforce


def milestone(paid=0.0, remaining=0.0, parts=(), paid_date=None, status="PENDING"):
    return SimpleNamespace(
        paid_amount=paid,
        remaining_amount=remaining,
        part_payments=[SimpleNamespace(amount=a, created_at=when) for when, a in parts],
        paid_date=paid_date,
        status=status,
    )


def material(paid=0.0, remaining=0.0, material_type=None):
    return SimpleNamespace(paid_amount=paid, remaining_amount=remaining, material_type=material_type)


def wage_log(total, status="PAID", day=date(2024, 3, 4), count=1, category="MASON"):
    return SimpleNamespace(total_wage=total, status=status, date=day, count=count, category=category)


def test_overview_of_nothing_is_zero():
    data = reporting.overview([], [], [])
    assert data["income"] == {"total": 0, "pending": 0}
    assert data["expense"]["total"] == 0
    assert data["profit"] == {"current": 0, "margin": 0.0, "margin_percent": 0.0}


def test_overview_counts_only_paid_wages_as_expense():
    data = reporting.overview(
        [milestone(paid=1000.0, remaining=500.0), milestone(paid=0.0, remaining=250.0)],
        [material(paid=300.0, remaining=100.0)],
        [wage_log(200.0), wage_log(50.0, status="PENDING")],
    )
    assert data["income"] == {"total": 1000.0, "pending": 750.0}
    assert data["expense"]["total"] == pytest.approx(500.0)
    assert data["expense"]["materials"] == pytest.approx(300.0)
    assert data["expense"]["labor"] == pytest.approx(200.0)
    assert data["expense"]["pending"] == pytest.approx(150.0)
    assert data["profit"]["current"] == pytest.approx(500.0)
    assert data["profit"]["margin"] == pytest.approx(0.5)
    assert data["profit"]["margin_percent"] == 50.0


def test_margin_is_zero_without_income():
    assert reporting.margin_of(0.0, -400.0) == 0.0


def test_income_events_split_part_payments_from_the_rest():
    m = milestone(
        paid=1000.0,
        parts=[(datetime(2024, 1, 10), 300.0), (datetime(2024, 2, 5), 200.0)],
        paid_date=datetime(2024, 3, 1),
    )
    events = reporting.milestone_income_events([m])
    assert events == [
        (datetime(2024, 1, 10), 300.0),
        (datetime(2024, 2, 5), 200.0),
        (datetime(2024, 3, 1), 500.0),
    ]
    # A milestone paid entirely through part payments adds nothing on its paid date
    settled = milestone(paid=300.0, parts=[(datetime(2024, 4, 1), 300.0)], paid_date=datetime(2024, 4, 1))
    assert reporting.milestone_income_events([settled]) == [(datetime(2024, 4, 1), 300.0)]


def test_monthly_trend_buckets_by_month_of_year():
    income = [(datetime(2024, 1, 10), 300.0), (datetime(2023, 12, 31), 999.0), (datetime(2024, 3, 1), 500.0)]
    payments = [SimpleNamespace(amount=120.0, payment_date=datetime(2024, 3, 20))]
    logs = [wage_log(80.0, day=date(2024, 3, 2)), wage_log(40.0, status="PENDING", day=date(2024, 3, 3))]

    months = reporting.monthly_trend(2024, income, payments, logs)
    assert len(months) == 12
    assert months[0]["income"] == 300.0
    assert months[0]["month_name"] == "Jan"
    march = months[2]
    assert march["income"] == 500.0
    assert march["material_expense"] == 120.0
    assert march["labor_expense"] == 80.0
    assert march["expense"] == 200.0
    assert march["profit"] == 300.0
    assert sum(m["income"] for m in months) == 800.0


def test_expense_breakdown_groups_untyped_materials_as_other():
    data = reporting.expense_breakdown(
        [material(paid=100.0, material_type="Cement"), material(paid=50.0), material(paid=25.0, material_type="Cement")],
        [wage_log(400.0), wage_log(100.0, category="HELPER_MALE"), wage_log(70.0, status="PENDING")],
    )
    assert {r["type"]: r["amount"] for r in data["materials"]} == {"Cement": 125.0, "Other": 50.0}
    assert {r["category"]: r["amount"] for r in data["labor"]} == {"MASON": 400.0, "HELPER_MALE": 100.0}
    assert data["totals"] == {"materials": 175.0, "labor": 500.0}


def test_weekly_workforce_buckets_end_today():
    today = date(2024, 3, 14)
    logs = [
        wage_log(100.0, day=date(2024, 3, 14), count=2),
        wage_log(50.0, day=date(2024, 3, 8), count=1),
        wage_log(70.0, day=date(2024, 3, 7), count=3),
        wage_log(999.0, day=date(2024, 2, 1)),
    ]
    weeks = reporting.weekly_workforce(logs, today, weeks=2)
    assert [w["week_end"] for w in weeks] == [date(2024, 3, 7), date(2024, 3, 14)]
    assert weeks[0]["week_start"] == date(2024, 3, 1)
    assert weeks[0]["total_wage"] == 70.0
    assert weeks[1]["total_wage"] == 150.0
    assert weeks[1]["worker_count"] == 3
    assert weeks[1]["log_count"] == 2
    assert reporting.weekly_workforce(logs, today, weeks=0) == []


def test_collectors_read_from_the_database(db, catalog, admin, project):
    order = procurement.create_material(
        db,
        {"project_id": project.id, "item": "Sand", "material_type": "Sand", "quantity": 2, "unit_price": 150.0},
        actor=admin,
    )
    _, payment = procurement.record_material_payment(db, order.id, 100.0, actor=admin)
    entry = workforce.create_log(
        db,
        {"project_id": project.id, "category": "HELPER_MALE", "count": 1, "date": date(2024, 5, 6)},
        catalog.workers,
    )
    workforce.mark_paid(db, entry.id)

    data = reporting.collect_overview(db, project_id=project.id)
    assert data["expense"]["materials"] == 100.0
    assert data["expense"]["labor"] == 500.0
    assert data["counts"]["projects"] == 1

    breakdown = reporting.collect_expense_breakdown(db, project_id=project.id)
    assert breakdown["totals"] == {"materials": 100.0, "labor": 500.0}

    stats = reporting.collect_project_stats(db)
    assert stats[0]["name"] == "Verma Villa"
    assert stats[0]["expense"] == 600.0

    months = reporting.collect_monthly(db, payment.payment_date.year)
    assert months[payment.payment_date.month - 1]["material_expense"] == 100.0

    weeks = reporting.collect_weekly_workforce(db, date(2024, 5, 12), weeks=1)
    assert weeks[0]["total_wage"] == 500.0
