import pytest

from camphq.errors import CapacityUnavailable, InvalidTransition, NotFound
from camphq.models import PaymentStatus, RegistrationStatus
from camphq.services import registrations


def test_create_registration_takes_a_slot(camp, make_athlete):
    athlete = make_athlete()

    registration = registrations.create_registration(camp.id, athlete.id, total_price_cents=25000)

    assert registration.status == RegistrationStatus.confirmed
    assert registration.payment_status == PaymentStatus.paid
    assert camp.slots_held == 1
    assert registrations.available_slots(camp.id) == 9
    assert registrations.confirmed_count(camp.id) == 1


def test_full_camp_rejects_new_registration(camp, enroll, make_athlete):
    enroll(10)

    with pytest.raises(CapacityUnavailable):
        registrations.create_registration(camp.id, make_athlete().id)

    assert camp.slots_held == 10
    assert registrations.confirmed_count(camp.id) == 10


def test_duplicate_registration_is_rejected(camp, enroll):
    (athlete, _), = enroll(1)

    with pytest.raises(InvalidTransition):
        registrations.create_registration(camp.id, athlete.id)

    assert camp.slots_held == 1


def test_unknown_camp_or_athlete(camp, make_athlete):
    with pytest.raises(NotFound):
        registrations.create_registration(999, make_athlete().id)
    with pytest.raises(NotFound):
        registrations.create_registration(camp.id, 999)


def test_cancel_frees_the_slot_once(camp, enroll):
    (_, registration), = enroll(1)

    cancelled = registrations.cancel_registration(registration.id, reason="family moved")

    assert cancelled.status == RegistrationStatus.cancelled
    assert cancelled.payment_status == PaymentStatus.refunded
    assert camp.slots_held == 0

    with pytest.raises(InvalidTransition):
        registrations.cancel_registration(registration.id)
    assert camp.slots_held == 0


def test_capacity_summary(camp, enroll):
    enroll(3)

    summary = registrations.capacity_summary(camp.id)

    assert summary["capacity"] == 10
    assert summary["confirmed"] == 3
    assert summary["available"] == 7
    assert summary["waitlisted"] == 0
