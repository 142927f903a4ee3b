from datetime import date

import pytest
from pydantic import ValidationError

from app.errors import NotFound, PreconditionFailed
from app.schemas.workforce import CategoryPatch, WorkerLogPatch
from app.services import workforce


def _log(db, catalog, admin, **data):
    data.setdefault("category", "MASON")
    data.setdefault("date", date(2024, 1, 3))
    return workforce.create_log(db, data, catalog.workers, actor=admin)


def test_log_uses_catalog_rate_and_calculator(db, catalog, admin):
    entry = _log(db, catalog, admin, count=5)
    assert entry.rate_per_worker == 800.0
    assert entry.hours_worked == 8
    assert entry.total_wage == pytest.approx(4000)
    assert entry.status == "PENDING"
    assert (entry.week_year, entry.week_number) == (2024, 1)


def test_explicit_rate_and_overtime(db, catalog, admin):
    entry = _log(db, catalog, admin, count=5, rate_per_worker=800.0, hours_worked=10)
    assert entry.total_wage == pytest.approx(5500)


def test_zero_hours_is_not_replaced_by_default(db, catalog, admin):
    entry = _log(db, catalog, admin, count=3, hours_worked=0)
    assert entry.hours_worked == 0
    assert entry.total_wage == 0


def test_iso_week_at_year_boundary(db, catalog, admin):
    entry = _log(db, catalog, admin, date=date(2021, 1, 1))
    assert (entry.week_year, entry.week_number) == (2020, 53)


def test_unknown_category_is_rejected(db, catalog, admin):
    with pytest.raises(NotFound):
        _log(db, catalog, admin, category="ASTRONAUT")


def test_custom_category_supplies_default_rate(db, catalog, admin):
    workforce.create_category(db, name="Welder", default_rate=950.0)
    entry = _log(db, catalog, admin, category=None, custom_category="Welder", count=2)
    assert entry.category == "Welder"
    assert entry.custom_category == "Welder"
    assert entry.total_wage == pytest.approx(1900)


def test_duplicate_custom_category_fails(db):
    workforce.create_category(db, name="Welder")
    with pytest.raises(PreconditionFailed):
        workforce.create_category(db, name="Welder")


def test_inactive_custom_category_leaves_catalog(db, catalog):
    category = workforce.create_category(db, name="Welder")
    assert "Welder" in workforce.load_catalog(db, catalog.workers).keys()
    workforce.update_category(db, category.id, CategoryPatch(is_active=False))
    assert "Welder" not in workforce.load_catalog(db, catalog.workers).keys()


def test_update_recomputes_wage_and_week(db, catalog, admin):
    entry = _log(db, catalog, admin, count=5)
    entry = workforce.update_log(db, entry.id, WorkerLogPatch(hours_worked=10), catalog.workers, actor=admin)
    assert entry.total_wage == pytest.approx(5500)

    entry = workforce.update_log(db, entry.id, WorkerLogPatch(date=date(2024, 2, 14), shift="NIGHT"), catalog.workers)
    assert entry.week_number == 7
    assert entry.total_wage == pytest.approx(5500 * 1.25)


@pytest.mark.parametrize("field", ["count", "shift", "shift_fraction", "date", "hours_worked", "rate_per_worker"])
def test_patch_cannot_null_a_wage_input(field):
    with pytest.raises(ValidationError):
        WorkerLogPatch.model_validate({field: None})
    assert WorkerLogPatch.model_validate({"notes": None}).model_dump(exclude_unset=True) == {"notes": None}


def test_paid_log_wage_inputs_are_frozen(db, catalog, admin):
    entry = _log(db, catalog, admin, count=2)
    workforce.mark_paid(db, entry.id, actor=admin)
    with pytest.raises(PreconditionFailed):
        workforce.update_log(db, entry.id, WorkerLogPatch(count=3), catalog.workers)
    entry = workforce.update_log(db, entry.id, WorkerLogPatch(notes="checked"), catalog.workers)
    assert entry.notes == "checked"
    assert entry.count == 2


def test_verify_and_mistake_flow(db, catalog, admin):
    entry = _log(db, catalog, admin)
    with pytest.raises(PreconditionFailed):
        workforce.acknowledge_mistake(db, entry.id)

    entry = workforce.verify_log(db, entry.id, admin)
    assert entry.work_verified is True
    assert entry.verified_by == admin.id

    entry = workforce.report_mistake(db, entry.id, "Plaster cracked")
    assert entry.has_mistake is True
    assert entry.fault_tolerance == "MEDIUM"
    entry = workforce.acknowledge_mistake(db, entry.id)
    assert entry.mistake_acknowledged is True


def test_pay_week_marks_only_that_week(db, catalog, admin):
    _log(db, catalog, admin, count=1)
    _log(db, catalog, admin, count=2, date=date(2024, 1, 5))
    other = _log(db, catalog, admin, count=1, date=date(2024, 1, 10))

    assert workforce.pay_week(db, 1, 2024, actor=admin) == 2
    assert workforce.pay_week(db, 1, 2024, actor=admin) == 0
    db.refresh(other)
    assert other.status == "PENDING"

    summary = workforce.weekly_summary(workforce.list_logs(db, week_number=1, week_year=2024), 1, 2024)
    assert summary["total_logs"] == 2
    assert (summary["week_start"], summary["week_end"]) == (date(2024, 1, 1), date(2024, 1, 7))
    assert summary["total_paid"] == pytest.approx(2400)
    assert summary["total_pending"] == 0
    assert summary["by_category"][0]["total_workers"] == 3


def test_stats_and_project_summary(db, catalog, admin, project):
    paid = _log(db, catalog, admin, count=1, project_id=project.id)
    _log(db, catalog, admin, category="HELPER_MALE", count=2, project_id=project.id)
    workforce.mark_paid(db, paid.id)

    stats = workforce.workforce_stats(workforce.list_logs(db), catalog.workers)
    assert stats["summary"]["total_logs"] == 2
    assert stats["summary"]["total_wages"] == pytest.approx(1800)
    assert stats["summary"]["paid_wages"] == pytest.approx(800)
    assert stats["summary"]["pending_wages"] == pytest.approx(1000)

    summary = workforce.project_workforce_summary(workforce.list_logs(db, project_id=project.id), project.id, catalog.workers)
    assert summary["total_wage"] == pytest.approx(1800)
    assert {c["category_name"] for c in summary["categories"]} == {"Mason", "Helper (Male)"}


def test_empty_stats_are_zero(catalog):
    stats = workforce.workforce_stats([], catalog.workers)
    assert stats["summary"]["total_wages"] == 0
    assert stats["by_category"] == []
