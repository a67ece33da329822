import pytest

from errors import NotFoundError, ValidationError
from ledger import get_customer, record_purchase, validate_contact


def test_validate_contact_normalizes():
    contact = validate_contact("  Mira  ", " MIRA@Mail.COM ", "  ")
    assert contact.name == "Mira"
    assert contact.email == "mira@mail.com"
    assert contact.phone is None


@pytest.mark.parametrize("name,email", [(None, "a@mail.com"), ("Mira", ""), ("Mira", "mira-at-mail")])
def test_validate_contact_rejects(name, email):
    with pytest.raises(ValidationError):
        validate_contact(name, email)


def test_record_purchase_upserts_and_increments(db):
    contact = validate_contact("Mira", "mira@mail.com", "+14155550100")
    first = record_purchase(db, contact, 2, 105.0)
    assert first["total_purchases"] == 2
    assert first["total_spent"] == 105.0

    record_purchase(db, validate_contact("Mira K", "MIRA@mail.com"), 1, 52.5)

    doc = get_customer(db, "Mira@Mail.com")
    assert doc["name"] == "Mira K"
    assert doc["phone"] == "+14155550100"
    assert doc["total_purchases"] == 3
    assert doc["total_spent"] == pytest.approx(157.5)
    assert isinstance(doc["last_purchase_date"], str)


def test_get_customer_missing(db):
    with pytest.raises(NotFoundError):
        get_customer(db, "ghost@mail.com")
