"""Integration tests for the CSV order import pipeline."""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import event

from codboard.exceptions import EmptyFileError, QuotaExceededError, TrialExpiredError
from codboard.models import AuditLog, BusinessBilling, Order, OrderItem, OrderStatus
from codboard.services.orders_service import OrdersService

TODAY = date(2026, 3, 15)

HEADER = "Customer Name,Phone,SKU,Quantity,Price\n"


def _orders(db, business):
    return db.query(Order).filter(Order.business_id == business.id).all()


def _set_limit(db, business, limit):
    billing = db.query(BusinessBilling).filter(BusinessBilling.business_id == business.id).one()
    billing.monthly_order_limit = limit
    db.commit()
    return billing


def test_import_mixed_file_reports_each_failure_and_imports_valid_row(test_db_session, test_business, make_product):
    make_product("A1", cost="20")
    csv_text = (
        HEADER
        + "Ahmed Ali,01012345678,A1,2,50\n"
        + "Sara Omar,01098765432,ZZZ,1,10\n"
        + ",01011112222,A1,1,10\n"
    )

    report = OrdersService(test_db_session).import_orders(test_business.id, csv_text, today=TODAY)

    assert report.success == 1
    assert report.failed == 2
    assert report.success + report.failed == report.total_rows == 3

    errors = {row["row_number"]: row["errors"] for row in report.errors}
    assert set(errors) == {3, 4}
    assert [e["code"] for e in errors[3]] == ["sku_not_found"]
    assert errors[3][0]["value"] == "ZZZ"
    assert [e["code"] for e in errors[4]] == ["invalid_field"]
    assert errors[4][0]["column"] == "Customer Name"

    orders = _orders(test_db_session, test_business)
    assert len(orders) == 1
    order = orders[0]
    assert order.revenue == Decimal("100")
    assert order.cost == Decimal("40")
    assert order.ad_cost == Decimal("0")
    assert order.order_date == TODAY
    assert order.customer_phone == "01012345678"
    assert len(order.items) == 1
    assert order.items[0].quantity == 2
    assert order.items[0].unit_price == Decimal("50")
    assert order.items[0].unit_cost == Decimal("20")


def test_rows_missing_quantity_or_price_never_create_orders(test_db_session, test_business, make_product):
    make_product("A1")
    csv_text = (
        HEADER
        + "Ahmed Ali,01012345678,A1,,50\n"
        + "Sara Omar,01098765432,A1,1,\n"
        + "Omar Said,01098765432,A1,0,10\n"
        + "Mona Adel,01098765432,A1,1,-5\n"
    )

    report = OrdersService(test_db_session).import_orders(test_business.id, csv_text, today=TODAY)

    assert report.success == 0
    assert report.failed == 4
    assert _orders(test_db_session, test_business) == []


def test_missing_required_column_rejects_whole_file(test_db_session, test_business, make_product):
    make_product("A1")
    csv_text = "Customer Name,Phone,SKU,Quantity\nAhmed Ali,01012345678,A1,2\n"

    report = OrdersService(test_db_session).import_orders(test_business.id, csv_text, today=TODAY)

    assert report.header_errors == ["Price (السعر)"]
    assert report.success == 0
    assert report.failed == 0
    assert report.errors == []
    assert _orders(test_db_session, test_business) == []


def test_header_only_file_is_empty(test_db_session, test_business):
    with pytest.raises(EmptyFileError):
        OrdersService(test_db_session).import_orders(test_business.id, HEADER, today=TODAY)


def test_quota_refusal_writes_nothing(test_db_session, test_business, make_product, make_order):
    product = make_product("A1")
    for day in (1, 2, 3, 4):
        make_order(date(2026, 3, day), [(product, 1)])
    _set_limit(test_db_session, test_business, 5)
    csv_text = (
        HEADER
        + "Ahmed Ali,01012345678,A1,1,50\n"
        + "Sara Omar,01098765432,A1,1,50\n"
        + "Omar Said,01055555555,A1,1,50\n"
    )

    with pytest.raises(QuotaExceededError) as exc_info:
        OrdersService(test_db_session).import_orders(test_business.id, csv_text, today=TODAY)

    assert exc_info.value.current == 4
    assert exc_info.value.limit == 5
    assert exc_info.value.requested == 3
    assert len(_orders(test_db_session, test_business)) == 4


def test_quota_counts_only_rows_that_would_be_written(test_db_session, test_business, make_product, make_order):
    product = make_product("A1")
    for day in (1, 2, 3, 4):
        make_order(date(2026, 3, day), [(product, 1)])
    _set_limit(test_db_session, test_business, 5)
    csv_text = (
        HEADER
        + "Ahmed Ali,01012345678,A1,1,50\n"
        + "Sara Omar,01098765432,NOPE,1,50\n"
        + "X,01055555555,A1,1,50\n"
    )

    report = OrdersService(test_db_session).import_orders(test_business.id, csv_text, today=TODAY)

    assert report.success == 1
    assert report.failed == 2
    assert len(_orders(test_db_session, test_business)) == 5


def test_expired_trial_refuses_import(test_db_session, test_business, make_product):
    make_product("A1")
    billing = test_db_session.query(BusinessBilling).filter(BusinessBilling.business_id == test_business.id).one()
    billing.trial_ends_at = datetime.utcnow() - timedelta(days=1)
    test_db_session.commit()

    with pytest.raises(TrialExpiredError):
        OrdersService(test_db_session).import_orders(
            test_business.id, HEADER + "Ahmed Ali,01012345678,A1,1,50\n", today=TODAY
        )

    assert _orders(test_db_session, test_business) == []


def test_sequential_identical_imports_get_distinct_order_numbers(test_db_session, test_business, make_product):
    make_product("A1")
    csv_text = HEADER + "Ahmed Ali,01012345678,A1,1,50\n"
    service = OrdersService(test_db_session)

    first = service.import_orders(test_business.id, csv_text, today=TODAY)
    second = service.import_orders(test_business.id, csv_text, today=TODAY)

    assert first.success == second.success == 1
    numbers = {o.order_number for o in _orders(test_db_session, test_business)}
    assert len(numbers) == 2
    assert all(n.startswith("ORD-") for n in numbers)


def test_colliding_generated_order_number_is_retried(test_db_session, test_business, make_product, monkeypatch):
    make_product("A1")
    service = OrdersService(test_db_session, order_number_prefix="ORD", max_order_number_attempts=3)
    numbers = iter(["ORD-1-AAAA", "ORD-1-AAAA", "ORD-1-BBBB"])
    monkeypatch.setattr(service, "generate_order_number", lambda: next(numbers))
    csv_text = HEADER + "Ahmed Ali,01012345678,A1,1,50\n" + "Sara Omar,01098765432,A1,1,50\n"

    report = service.import_orders(test_business.id, csv_text, today=TODAY)

    assert report.success == 2
    assert report.failed == 0
    assert {o.order_number for o in _orders(test_db_session, test_business)} == {"ORD-1-AAAA", "ORD-1-BBBB"}
    assert test_db_session.query(OrderItem).count() == 2


def test_duplicate_order_number_from_file_fails_only_that_row(test_db_session, test_business, make_product):
    make_product("A1")
    csv_text = (
        "Order Number,Customer Name,Phone,SKU,Quantity,Price\n"
        "INV-1,Ahmed Ali,01012345678,A1,1,50\n"
        "INV-1,Sara Omar,01098765432,A1,1,50\n"
    )

    report = OrdersService(test_db_session).import_orders(test_business.id, csv_text, today=TODAY)

    assert report.success == 1
    assert report.failed == 1
    assert report.errors[0]["row_number"] == 3
    assert report.errors[0]["errors"][0]["code"] == "insert_failed"
    assert test_db_session.query(Order).count() == 1
    assert test_db_session.query(OrderItem).count() == 1


def test_failed_item_insert_discards_its_order(test_db_session, test_business, make_product):
    make_product("A1")
    csv_text = (
        HEADER
        + "Ahmed Ali,01012345678,A1,1,50\n"
        + "Sara Omar,01098765432,A1,7,50\n"
        + "Mona Adel,01055556666,A1,2,50\n"
    )

    def reject_quantity_seven(mapper, connection, target):
        if target.quantity == 7:
            raise RuntimeError("item insert rejected")

    event.listen(OrderItem, "before_insert", reject_quantity_seven)
    try:
        report = OrdersService(test_db_session).import_orders(test_business.id, csv_text, today=TODAY)
    finally:
        event.remove(OrderItem, "before_insert", reject_quantity_seven)

    assert report.success == 2
    assert report.failed == 1
    assert report.errors[0]["row_number"] == 3
    assert report.errors[0]["errors"][0]["code"] == "insert_failed"
    names = {o.customer_name for o in _orders(test_db_session, test_business)}
    assert names == {"Ahmed Ali", "Mona Adel"}
    assert test_db_session.query(OrderItem).count() == 2


@pytest.mark.parametrize("quantity", ["1e30", "1e999999999", "99999999999"])
def test_out_of_range_quantity_fails_the_row_and_returns_a_report(test_db_session, test_business, make_product, quantity):
    make_product("A1")
    csv_text = (
        HEADER
        + "Ahmed Ali,01012345678,A1,1,50\n"
        + f"Sara Omar,01098765432,A1,{quantity},50\n"
        + "Mona Adel,01055556666,A1,2,50\n"
    )

    report = OrdersService(test_db_session).import_orders(test_business.id, csv_text, today=TODAY)

    assert report.success == 2
    assert report.failed == 1
    assert report.errors[0]["row_number"] == 3
    assert report.errors[0]["errors"][0]["column"] == "Quantity"
    assert len(_orders(test_db_session, test_business)) == 2


def test_sku_match_ignores_case_and_whitespace_and_skips_inactive(test_db_session, test_business, make_product):
    make_product("A1")
    make_product("OLD", is_active=False)
    csv_text = HEADER + "Ahmed Ali,01012345678,  a1 ,1,50\n" + "Sara Omar,01098765432,OLD,1,50\n"

    report = OrdersService(test_db_session).import_orders(test_business.id, csv_text, today=TODAY)

    assert report.success == 1
    assert report.errors[0]["row_number"] == 3
    assert report.errors[0]["errors"][0]["code"] == "sku_not_found"
    assert report.products_created == 0


def test_sku_from_another_business_is_not_found(test_db_session, test_business, test_business_b, make_product):
    make_product("B1", business=test_business_b)

    report = OrdersService(test_db_session).import_orders(
        test_business.id, HEADER + "Ahmed Ali,01012345678,B1,1,50\n", today=TODAY
    )

    assert report.success == 0
    assert report.errors[0]["errors"][0]["code"] == "sku_not_found"


def test_arabic_semicolon_file_with_optional_columns(test_db_session, test_business, make_product):
    make_product("A1", cost="10")
    csv_text = (
        "\ufeffالتاريخ;اسم العميل;رقم الهاتف;المحافظة;العنوان;رمز المنتج;المنتج;الكمية;السعر;الحالة;ملاحظات\n"
        "05/03/2026;أحمد محمد;010-1234-5678;القاهرة;مدينة نصر;A1;سماعات;3;1,200;مؤكد;اتصل أولا\n"
    )

    report = OrdersService(test_db_session).import_orders(test_business.id, csv_text, today=TODAY)

    assert report.success == 1, report.errors
    order = _orders(test_db_session, test_business)[0]
    confirmed = (
        test_db_session.query(OrderStatus)
        .filter(OrderStatus.business_id == test_business.id, OrderStatus.key == "confirmed")
        .one()
    )
    assert order.order_date == date(2026, 3, 5)
    assert order.status_id == confirmed.id
    assert order.customer_phone == "01012345678"
    assert order.customer_address == "القاهرة - مدينة نصر"
    assert order.revenue == Decimal("3600")
    assert order.cost == Decimal("30")
    assert order.notes == "Product: سماعات | اتصل أولا"


def test_rows_without_status_get_default_status(test_db_session, test_business, make_product):
    make_product("A1")
    OrdersService(test_db_session).import_orders(
        test_business.id, HEADER + "Ahmed Ali,01012345678,A1,1,50\n", today=TODAY
    )

    order = _orders(test_db_session, test_business)[0]
    assert order.status.key == "new"


def test_successful_import_is_audited(test_db_session, test_business, test_user, make_product):
    make_product("A1")
    OrdersService(test_db_session).import_orders(
        test_business.id, HEADER + "Ahmed Ali,01012345678,A1,1,50\n", user_id=test_user.id, today=TODAY
    )

    entry = test_db_session.query(AuditLog).filter(AuditLog.entity_type == "orders").one()
    assert entry.action == "import"
    assert entry.user_id == test_user.id
    assert entry.after["success"] == 1


def test_export_includes_net_profit_after_ad_cost(test_db_session, test_business, make_product, make_order):
    product = make_product("A1")
    make_order(date(2026, 3, 2), [(product, 1)], revenue="100", ad_cost="30")

    content = OrdersService(test_db_session).export_orders_csv(test_business.id)

    assert content.startswith("\ufeff")
    lines = content.lstrip("\ufeff").splitlines()
    assert lines[0].startswith('"Order Number","Date","Status"')
    assert '"100.00","0.00","0.00","30.00","70.00"' in lines[1]
    assert len(lines) == 2
