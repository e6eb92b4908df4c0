# tests/test_time_utils.py
from datetime import datetime, timedelta, timezone

from posinvoice.models import Customer, Product, Sale
from posinvoice.time_utils import as_utc, parse_iso_datetime, to_utc_z


def test_parse_iso_datetime():
    assert parse_iso_datetime(None) is None
    assert parse_iso_datetime("  ") is None
    assert parse_iso_datetime("2024-03-01T10:00:00Z") == datetime(2024, 3, 1, 10, tzinfo=timezone.utc)
    assert parse_iso_datetime("2024-03-01T10:00:00") == datetime(2024, 3, 1, 10, tzinfo=timezone.utc)
    ist = parse_iso_datetime("2024-03-01T15:30:00+05:30")
    assert ist == datetime(2024, 3, 1, 10, tzinfo=timezone.utc)
    assert ist.utcoffset() == timedelta(0)


def test_as_utc_and_z_format():
    assert as_utc(None) is None
    naive = datetime(2024, 3, 1, 10, 0, 0, 123)
    assert as_utc(naive).tzinfo is timezone.utc
    assert to_utc_z(naive) == "2024-03-01T10:00:00Z"


def test_stored_records_normalize_created_at():
    sale = Sale.model_validate({"id": "s", "items": [], "subtotal": 0, "total": 0,
                                "created_at": "2024-03-01T15:30:00+05:30"})
    assert sale.created_at == datetime(2024, 3, 1, 10, tzinfo=timezone.utc)
    assert sale.created_at.utcoffset() == timedelta(0)

    product = Product(id="p", name="P", created_at=datetime(2024, 3, 1, 10))
    assert product.created_at.tzinfo is not None
    customer = Customer(id="c", name="C", mobile="1", created_at="2024-03-01T10:00:00")
    assert customer.created_at == datetime(2024, 3, 1, 10, tzinfo=timezone.utc)
