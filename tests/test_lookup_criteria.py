import pytest

from repairdesk.tickets.errors import ValidationError
from repairdesk.tickets.lookup import LookupCriteria, LookupField, PageRequest, normalize_phone


def test_phone_is_reduced_to_digits():
    criteria = LookupCriteria.build(phone="+91 98765-43210")

    assert criteria.field is LookupField.PHONE
    assert criteria.value == "919876543210"


def test_short_phone_is_rejected_before_querying():
    with pytest.raises(ValidationError):
        LookupCriteria.build(phone="98765")


def test_email_is_validated_and_lowercased():
    assert LookupCriteria.build(email=" Asha@Example.COM ").value == "asha@example.com"
    with pytest.raises(ValidationError):
        LookupCriteria.build(email="asha@example")


def test_name_is_collapsed_and_split_into_terms():
    criteria = LookupCriteria.build(name="  Asha   VERMA ")

    assert criteria.value == "asha verma"
    assert criteria.name_terms == ("asha", "verma")


def test_single_character_name_is_rejected():
    with pytest.raises(ValidationError):
        LookupCriteria.build(name="a")


def test_ticket_number_is_trimmed():
    criteria = LookupCriteria.build(ticket_number=" 0703202432101234 ")

    assert criteria.field is LookupField.TICKET_NUMBER
    assert criteria.value == "0703202432101234"
    assert criteria.name_terms == ()


def test_exactly_one_key_is_required():
    with pytest.raises(ValidationError):
        LookupCriteria.build()
    with pytest.raises(ValidationError):
        LookupCriteria.build(phone="   ", name="")
    with pytest.raises(ValidationError):
        LookupCriteria.build(phone="9876543210", name="Asha")


def test_normalize_phone_handles_none():
    assert normalize_phone(None) == ""


def test_page_request_defaults_and_offset():
    page = PageRequest.build(None, None, default_limit=20, max_limit=100)
    assert (page.page, page.limit, page.offset) == (1, 20, 0)
    assert PageRequest.build(3, 10).offset == 20


@pytest.mark.parametrize("page,limit", [(0, 10), (-1, 10), (1, 0), (1, 101)])
def test_page_request_rejects_out_of_range_values(page, limit):
    with pytest.raises(ValidationError):
        PageRequest.build(page, limit, max_limit=100)
