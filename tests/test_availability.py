import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from medequip.core.config import settings
from medequip.core.errors import EquipmentNotFound, InvalidInterval, InvalidReservation
from medequip.crud.equipment import create_category, create_equipment
from medequip.crud.reservations import add_reservation
from medequip.db.session import Base
from medequip.models.equipment import Equipment
from medequip.models.reservation import ReservationStatus
from medequip.services.availability import (
    check_availability,
    evaluate,
    find_overlapping,
    get_reserved_quantity,
    intervals_overlap,
    overlapping,
    reserved_quantity,
)

# Ensure models are registered so metadata tables are created
from medequip.models import equipment as equipment_model  # noqa: F401
from medequip.models import reservation as reservation_model  # noqa: F401


def at(hour: int, minute: int = 0, day: int = 3) -> datetime:
    return datetime(2024, 6, day, hour, minute)


def booking(id, start, end, quantity=1, status="pending", equipment_id=1):
    return SimpleNamespace(
        id=id,
        equipment_id=equipment_id,
        status=status,
        start_time=start,
        end_time=end,
        quantity=quantity,
    )


def stock(quantity: int, unlimited: bool = False) -> Equipment:
    return Equipment(id=1, name="Infusion pump", quantity=quantity, is_unlimited=unlimited)


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(params=[True, False], ids=["pushdown", "in-memory"])
def pushdown(request, monkeypatch):
    # Both store modes must give identical answers.
    monkeypatch.setattr(settings, "PUSHDOWN_FILTERS", request.param)
    return request.param


def seed(db, equipment, start, end, quantity=1, status=ReservationStatus.PENDING):
    return add_reservation(
        db,
        {
            "equipment_id": equipment.id,
            "department": "ICU",
            "applicant_name": "Sato",
            "contact_info": "sato@example.org",
            "start_time": start,
            "end_time": end,
            "quantity": quantity,
            "status": status,
        },
    )


# ---------- pure engine ----------


def test_overlap_is_half_open():
    assert intervals_overlap(at(10), at(12), at(11), at(13))
    assert intervals_overlap(at(10), at(12), at(10, 30), at(10, 45))
    assert not intervals_overlap(at(10), at(12), at(12), at(14))
    assert not intervals_overlap(at(12), at(14), at(10), at(12))


def test_back_to_back_bookings_do_not_contend():
    existing = [booking(1, at(10), at(12))]
    result = evaluate(stock(1), reserved_quantity(existing, 1, at(12), at(14)), 1)
    assert result.available is True
    assert result.remaining == 1


def test_strict_overlap_is_rejected():
    existing = [booking(1, at(10), at(12))]
    result = evaluate(stock(1), reserved_quantity(existing, 1, at(11), at(13)), 1)
    assert result.available is False
    assert result.remaining == 0


@pytest.mark.parametrize("status", ["rejected", "cancelled", "completed"])
def test_inactive_statuses_never_block(status):
    existing = [booking(1, at(10), at(12), status=status)]
    assert reserved_quantity(existing, 1, at(10), at(12)) == 0


def test_excluded_reservation_does_not_count_against_itself():
    existing = [booking(7, at(10), at(12))]
    assert reserved_quantity(existing, 1, at(10), at(12)) == 1
    assert reserved_quantity(existing, 1, at(10), at(12), exclude_reservation_id=7) == 0


def test_other_equipment_is_ignored():
    existing = [booking(1, at(10), at(12), equipment_id=2), booking(2, at(10), at(12), equipment_id=None)]
    assert reserved_quantity(existing, 1, at(10), at(12)) == 0


def test_quantities_aggregate_and_remaining_is_clamped():
    existing = [booking(i, at(9 + i), at(13), quantity=2) for i in range(1, 4)]
    reserved = reserved_quantity(existing, 1, at(12), at(12, 30))
    assert reserved == 6
    result = evaluate(stock(5), reserved, 1)
    assert result.available is False
    assert result.remaining == 0
    assert result.reserved == 6


def test_unlimited_stock_always_available():
    existing = [booking(i, at(10), at(12), quantity=50) for i in range(1, 4)]
    result = evaluate(stock(0, unlimited=True), reserved_quantity(existing, 1, at(10), at(12)), 1000)
    assert result.available is True
    assert result.unlimited is True
    assert result.remaining is None


def test_invalid_interval_is_rejected():
    with pytest.raises(InvalidInterval):
        reserved_quantity([], 1, at(12), at(12))
    with pytest.raises(InvalidInterval):
        reserved_quantity([], 1, at(13), at(12))


def test_requested_quantity_must_be_positive():
    with pytest.raises(InvalidReservation):
        evaluate(stock(3), 0, 0)


def test_overlapping_sorted_by_start():
    existing = [
        booking(3, at(11), at(15)),
        booking(1, at(9), at(12), status="approved"),
        booking(2, at(10), at(11), status="cancelled"),
        booking(4, at(14), at(16)),
    ]
    found = overlapping(existing, 1, at(10), at(14))
    assert [item.id for item in found] == [1, 3]


def test_aware_and_naive_times_compare_in_utc():
    tokyo = timezone(timedelta(hours=9))
    existing = [booking(1, at(10), at(12))]
    # 19:30 in Tokyo is 10:30 UTC
    assert reserved_quantity(existing, 1, datetime(2024, 6, 3, 19, 30, tzinfo=tokyo), at(11)) == 1


# ---------- store-backed ----------


def test_end_to_end_scenario(db_session, pushdown):
    equipment = create_equipment(db_session, {"name": "Ventilator", "quantity": 2})
    seed(
        db_session,
        equipment,
        datetime(2024, 6, 3, 9, 0),
        datetime(2024, 6, 3, 11, 0),
        status=ReservationStatus.APPROVED,
    )
    seed(db_session, equipment, datetime(2024, 6, 3, 10, 0), datetime(2024, 6, 3, 12, 0))

    busy = check_availability(db_session, equipment, datetime(2024, 6, 3, 10, 30), datetime(2024, 6, 3, 10, 45), 1)
    assert busy.available is False
    assert busy.remaining == 0
    assert busy.reserved == 2

    free = check_availability(db_session, equipment, datetime(2024, 6, 3, 12, 0), datetime(2024, 6, 3, 13, 0), 2)
    assert free.available is True
    assert free.remaining == 2


def test_reserved_quantity_reads_store(db_session, pushdown):
    equipment = create_equipment(db_session, {"name": "Defibrillator", "quantity": 5})
    other = create_equipment(db_session, {"name": "Wheelchair", "quantity": 5})
    seed(db_session, equipment, at(9), at(11), quantity=2)
    seed(db_session, equipment, at(10), at(12), quantity=1, status=ReservationStatus.CANCELLED)
    seed(db_session, other, at(9), at(11), quantity=4)
    mine = seed(db_session, equipment, at(10), at(11), quantity=3)

    assert get_reserved_quantity(db_session, equipment.id, at(10), at(10, 30)) == 5
    assert get_reserved_quantity(db_session, equipment.id, at(10), at(10, 30), exclude_reservation_id=mine.id) == 2
    assert get_reserved_quantity(db_session, equipment.id, at(11), at(12)) == 0


def test_check_availability_by_id_and_unknown_id(db_session):
    equipment = create_equipment(db_session, {"name": "ECG monitor", "quantity": 1})
    seed(db_session, equipment, at(10), at(12))

    result = check_availability(db_session, equipment.id, at(11), at(13), 1)
    assert result.available is False

    with pytest.raises(EquipmentNotFound):
        check_availability(db_session, 9999, at(11), at(13), 1)


def test_consumable_category_counts_as_unlimited(db_session):
    consumables = create_category(db_session, {"name": "消耗品"})
    gloves = create_equipment(db_session, {"name": "Gloves", "quantity": 1, "category_id": consumables.id})
    seed(db_session, gloves, at(10), at(12), quantity=1)

    result = check_availability(db_session, gloves, at(10), at(12), 20)
    assert result.available is True
    assert result.unlimited is True
    assert result.remaining is None


def test_find_overlapping_returns_active_rows_in_order(db_session, pushdown):
    equipment = create_equipment(db_session, {"name": "Ultrasound", "quantity": 3})
    late = seed(db_session, equipment, at(13), at(15))
    early = seed(db_session, equipment, at(9), at(11), status=ReservationStatus.APPROVED)
    seed(db_session, equipment, at(10), at(12), status=ReservationStatus.REJECTED)
    seed(db_session, equipment, at(15), at(16))

    found = find_overlapping(db_session, equipment.id, at(10), at(15))
    assert [row.id for row in found] == [early.id, late.id]
