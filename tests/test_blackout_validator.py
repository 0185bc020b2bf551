import pytest
from datetime import date
from decimal import Decimal

from pto_service.models.holiday import Holiday
from pto_service.models.pto_blackout import PtoBlackout, RestrictionType
from pto_service.models.pto_request import PtoRequest, RequestStatus
from pto_service.models.user import Position
from pto_service.services.blackout_validator import BlackoutValidator

MONDAY = date(2030, 3, 4)
WEDNESDAY = date(2030, 3, 6)
THURSDAY = date(2030, 3, 7)
FRIDAY = date(2030, 3, 8)


@pytest.fixture
def validator(db_session):
    return BlackoutValidator(db_session)


@pytest.fixture
def add_blackout(db_session):
    def _add_blackout(**kwargs):
        kwargs.setdefault("name", "Blackout")
        kwargs.setdefault("start_date", MONDAY)
        kwargs.setdefault("end_date", FRIDAY)
        blackout = PtoBlackout(**kwargs)
        db_session.add(blackout)
        db_session.commit()
        return blackout
    return _add_blackout


def _pending_request(db_session, user, pto_type, start, end, number):
    request = PtoRequest(
        request_number=number, user_id=user.id, pto_type_id=pto_type.id,
        start_date=start, end_date=end, total_days=Decimal("1"), status=RequestStatus.PENDING.value,
    )
    db_session.add(request)
    db_session.commit()
    return request


def test_no_blackouts(validator, employee, vacation):
    check = validator.check(employee, MONDAY, FRIDAY, vacation.id)
    assert check.overlaps is False
    assert check.can_submit is True


def test_strict_company_wide_blackout_blocks(validator, add_blackout, employee, vacation):
    blackout = add_blackout(name="Inventory", start_date=FRIDAY, end_date=date(2030, 3, 12),
                            is_company_wide=True, is_strict=True)

    check = validator.check(employee, MONDAY, FRIDAY, vacation.id)

    assert check.overlaps is True
    assert check.strict is True
    assert check.can_submit is False
    assert check.blackout_ids == [blackout.id]
    assert check.conflicts[0]["conflicting_days"] == ["2030-03-08"]


def test_range_touching_blackout_boundary_overlaps(validator, add_blackout, employee, vacation):
    add_blackout(start_date=date(2030, 2, 25), end_date=MONDAY, is_company_wide=True, is_strict=True)
    assert validator.check(employee, MONDAY, MONDAY, vacation.id).can_submit is False
    assert validator.check(employee, date(2030, 3, 5), FRIDAY, vacation.id).overlaps is False


def test_non_strict_blackout_only_warns(validator, add_blackout, employee, vacation):
    add_blackout(is_company_wide=True, is_strict=False)
    check = validator.check(employee, MONDAY, WEDNESDAY, vacation.id)
    assert check.overlaps is True
    assert check.strict is False
    assert check.can_submit is True
    assert len(check.warnings) == 1


def test_emergency_override_turns_block_into_warning(validator, add_blackout, employee, vacation):
    add_blackout(is_company_wide=True, is_strict=True, allow_emergency_override=True)

    assert validator.check(employee, MONDAY, WEDNESDAY, vacation.id).can_submit is False

    check = validator.check(employee, MONDAY, WEDNESDAY, vacation.id, emergency_override=True)
    assert check.can_submit is True
    assert check.emergency_override_used is True
    assert check.warnings[0]["overridden"] is True


def test_override_is_ignored_when_not_allowed(validator, add_blackout, employee, vacation):
    add_blackout(is_company_wide=True, is_strict=True, allow_emergency_override=False)
    check = validator.check(employee, MONDAY, WEDNESDAY, vacation.id, emergency_override=True)
    assert check.can_submit is False
    assert check.emergency_override_used is False


def test_position_and_user_scoping(validator, db_session, add_blackout, employee, colleague, vacation):
    engineering = Position(name="Engineering")
    db_session.add(engineering)
    db_session.commit()
    employee.position_id = engineering.id
    db_session.commit()

    add_blackout(name="Eng freeze", position_id=engineering.id, is_strict=True)
    add_blackout(name="Named", user_ids=[colleague.id], is_strict=True)

    assert [c["name"] for c in validator.check(employee, MONDAY, MONDAY, vacation.id).conflicts] == ["Eng freeze"]
    assert [c["name"] for c in validator.check(colleague, MONDAY, MONDAY, vacation.id).conflicts] == ["Named"]


def test_type_filter_and_inactive_blackouts(validator, add_blackout, employee, vacation, make_type):
    sick = make_type("SICK")
    add_blackout(is_company_wide=True, is_strict=True, pto_type_ids=[vacation.id])
    add_blackout(is_company_wide=True, is_strict=True, is_active=False)

    assert validator.check(employee, MONDAY, MONDAY, vacation.id).can_submit is False
    assert validator.check(employee, MONDAY, MONDAY, sick.id).overlaps is False


def test_request_limit(validator, db_session, add_blackout, employee, colleague, vacation):
    add_blackout(name="Peak", is_company_wide=True, is_strict=True,
                 restriction_type=RestrictionType.LIMIT_REQUESTS.value, max_requests_allowed=1)

    first = validator.check(employee, MONDAY, MONDAY, vacation.id)
    assert first.can_submit is True
    assert first.warnings[0]["current_count"] == 0

    taken = _pending_request(db_session, colleague, vacation, WEDNESDAY, THURSDAY, "PTO-T-1")
    full = validator.check(employee, MONDAY, MONDAY, vacation.id)
    assert full.can_submit is False
    assert full.conflicts[0]["max_allowed"] == 1

    # Re-validating the request that holds the slot does not count it against itself
    assert validator.check(colleague, WEDNESDAY, THURSDAY, vacation.id, exclude_request_id=taken.id).can_submit


def test_limit_without_maximum_never_blocks(validator, db_session, add_blackout, employee, colleague, vacation):
    add_blackout(is_company_wide=True, is_strict=True, restriction_type=RestrictionType.LIMIT_REQUESTS.value)
    _pending_request(db_session, colleague, vacation, MONDAY, MONDAY, "PTO-T-2")
    assert validator.check(employee, MONDAY, MONDAY, vacation.id).can_submit is True


def test_recurring_blackout_matches_weekdays_only(validator, add_blackout, employee, vacation):
    blackout = add_blackout(name="Release Fridays", start_date=date(2030, 1, 1), end_date=date(2030, 12, 31),
                            is_company_wide=True, is_strict=True, is_recurring=True, recurring_days=[4])

    assert validator.check(employee, MONDAY, THURSDAY, vacation.id).overlaps is False
    check = validator.check(employee, THURSDAY, FRIDAY, vacation.id)
    assert check.can_submit is False
    assert check.conflicts[0]["conflicting_days"] == ["2030-03-08"]
    assert blackout.formatted_range == "Every Friday (Jan 01, 2030 - Dec 31, 2030)"


def test_holiday_blackout_stands_aside_when_range_includes_holiday(validator, db_session, add_blackout,
                                                                   employee, vacation):
    add_blackout(name="Holiday season", is_company_wide=True, is_strict=True, is_holiday=True)
    assert validator.check(employee, MONDAY, WEDNESDAY, vacation.id).can_submit is False

    db_session.add(Holiday(name="Founders Day", date=WEDNESDAY))
    db_session.commit()

    check = validator.check(employee, MONDAY, WEDNESDAY, vacation.id)
    assert check.overlaps is False
    assert check.can_submit is True
    # A range clear of the holiday is still blocked
    assert validator.check(employee, THURSDAY, FRIDAY, vacation.id).can_submit is False


def test_regular_blackout_ignores_holidays(validator, db_session, add_blackout, employee, vacation):
    add_blackout(name="Audit", is_company_wide=True, is_strict=True)
    db_session.add(Holiday(name="Founders Day", date=WEDNESDAY))
    db_session.commit()

    assert validator.check(employee, MONDAY, WEDNESDAY, vacation.id).can_submit is False


def test_recurring_holidays_repeat_every_year(validator, db_session):
    db_session.add_all([
        Holiday(name="New Year", date=date(2020, 1, 1), is_recurring=True),
        Holiday(name="Leap Day", date=date(2028, 2, 29), is_recurring=True),
        Holiday(name="One-off", date=date(2029, 3, 5)),
    ])
    db_session.commit()

    assert validator.holidays_in_range(date(2029, 12, 30), date(2031, 1, 2)) == [
        date(2030, 1, 1), date(2031, 1, 1)
    ]
    assert validator.holidays_in_range(date(2032, 2, 1), date(2032, 3, 1)) == [date(2032, 2, 29)]
    assert validator.holidays_in_range(MONDAY, FRIDAY) == []
