"""Integration tests for campaign cost allocation against a real session."""

from datetime import date
from decimal import Decimal

import pytest

from codboard.exceptions import AllocationError, AlreadyAllocatedError, CampaignNotFoundError
from codboard.models import AdCampaign, AdCostLog, AuditLog, Order
from codboard.services.ad_cost_allocation import AdCostAllocationService
from codboard.services.advertising_service import AdvertisingService

DAY = date(2026, 3, 10)


def _ad_cost(db, order):
    return db.get(Order, order.id).ad_cost


def _logs(db, campaign):
    return db.query(AdCostLog).filter(AdCostLog.campaign_id == campaign.id).all()


@pytest.fixture
def two_product_day(make_product, make_order, make_campaign):
    """A costs 60 and B costs 40 in the campaign; o1 = A x2, o2 = A x1 + B x1."""
    a = make_product("A")
    b = make_product("B")
    c = make_product("C")
    o1 = make_order(DAY, [(a, 2)])
    o2 = make_order(DAY, [(a, 1), (b, 1)])
    untargeted = make_order(DAY, [(c, 4)])
    other_day = make_order(date(2026, 3, 11), [(a, 1)])
    campaign = make_campaign(DAY, {a: "60", b: "40"}, name="March push")
    return {"a": a, "b": b, "o1": o1, "o2": o2, "untargeted": untargeted, "other_day": other_day, "campaign": campaign}


def test_allocate_spreads_cost_over_matched_orders(test_db_session, test_business, two_product_day):
    data = two_product_day
    service = AdCostAllocationService(test_db_session)

    result = service.allocate_campaign_costs(data["campaign"].id, test_business.id)

    assert result.success
    assert result.orders_updated == 2
    assert result.total_cost_allocated == Decimal("55")
    assert _ad_cost(test_db_session, data["o1"]) == Decimal("30")
    assert _ad_cost(test_db_session, data["o2"]) == Decimal("25")
    assert _ad_cost(test_db_session, data["untargeted"]) == Decimal("0")
    assert _ad_cost(test_db_session, data["other_day"]) == Decimal("0")

    logs = {log.order_id: log.allocated_cost for log in _logs(test_db_session, data["campaign"])}
    assert logs == {data["o1"].id: Decimal("30"), data["o2"].id: Decimal("25")}

    campaign = test_db_session.get(AdCampaign, data["campaign"].id)
    assert campaign.is_allocated is True
    assert campaign.allocated_at is not None


def test_allocation_adds_to_existing_ad_cost(test_db_session, test_business, make_product, make_order, make_campaign):
    a = make_product("A")
    order = make_order(DAY, [(a, 1)], ad_cost="5")
    first = make_campaign(DAY, {a: "20"})
    second = make_campaign(DAY, {a: "10"})
    service = AdCostAllocationService(test_db_session)

    service.allocate_campaign_costs(first.id, test_business.id)
    service.allocate_campaign_costs(second.id, test_business.id)

    assert _ad_cost(test_db_session, order) == Decimal("35")


def test_second_allocate_is_refused_without_side_effects(test_db_session, test_business, two_product_day):
    data = two_product_day
    service = AdCostAllocationService(test_db_session)
    service.allocate_campaign_costs(data["campaign"].id, test_business.id)

    with pytest.raises(AlreadyAllocatedError):
        service.allocate_campaign_costs(data["campaign"].id, test_business.id)

    assert _ad_cost(test_db_session, data["o1"]) == Decimal("30")
    assert _ad_cost(test_db_session, data["o2"]) == Decimal("25")
    assert len(_logs(test_db_session, data["campaign"])) == 2


def test_campaign_without_matching_orders_stays_unallocated(test_db_session, test_business, make_product, make_order, make_campaign):
    a = make_product("A")
    make_order(date(2026, 3, 1), [(a, 1)])
    campaign = make_campaign(DAY, {a: "50"})

    result = AdCostAllocationService(test_db_session).allocate_campaign_costs(campaign.id, test_business.id)

    assert result.success
    assert result.orders_updated == 0
    assert result.total_cost_allocated == Decimal("0")
    assert test_db_session.get(AdCampaign, campaign.id).is_allocated is False
    assert _logs(test_db_session, campaign) == []


def test_campaign_of_another_business_is_not_found(test_db_session, test_business, test_business_b, make_product, make_order, make_campaign):
    b_product = make_product("A", business=test_business_b)
    b_order = make_order(DAY, [(b_product, 1)], business=test_business_b)
    b_campaign = make_campaign(DAY, {b_product: "40"}, business=test_business_b)
    service = AdCostAllocationService(test_db_session)

    with pytest.raises(CampaignNotFoundError):
        service.allocate_campaign_costs(b_campaign.id, test_business.id)
    with pytest.raises(CampaignNotFoundError):
        service.deallocate_campaign_costs(b_campaign.id, test_business.id)

    assert _ad_cost(test_db_session, b_order) == Decimal("0")


def test_orders_of_other_businesses_are_never_matched(test_db_session, test_business, test_business_b, make_product, make_order, make_campaign):
    a = make_product("A")
    order = make_order(DAY, [(a, 1)])
    # Same product id on a foreign order must not join the pool
    foreign = make_order(DAY, [(a, 3)], business=test_business_b)
    campaign = make_campaign(DAY, {a: "40"})

    AdCostAllocationService(test_db_session).allocate_campaign_costs(campaign.id, test_business.id)

    assert _ad_cost(test_db_session, order) == Decimal("40")
    assert _ad_cost(test_db_session, foreign) == Decimal("0")


def test_deallocate_restores_previous_ad_cost(test_db_session, test_business, make_product, make_order, make_campaign):
    a = make_product("A")
    order = make_order(DAY, [(a, 1)], ad_cost="5")
    campaign = make_campaign(DAY, {a: "20"})
    service = AdCostAllocationService(test_db_session)
    service.allocate_campaign_costs(campaign.id, test_business.id)

    result = service.deallocate_campaign_costs(campaign.id, test_business.id)

    assert result.success
    assert result.orders_updated == 1
    assert result.total_cost_allocated == Decimal("20")
    assert _ad_cost(test_db_session, order) == Decimal("5")
    assert _logs(test_db_session, campaign) == []
    refreshed = test_db_session.get(AdCampaign, campaign.id)
    assert refreshed.is_allocated is False
    assert refreshed.allocated_at is None


def test_deallocate_never_drives_ad_cost_negative(test_db_session, test_business, make_product, make_order, make_campaign):
    a = make_product("A")
    order = make_order(DAY, [(a, 1)])
    campaign = make_campaign(DAY, {a: "20"})
    service = AdCostAllocationService(test_db_session)
    service.allocate_campaign_costs(campaign.id, test_business.id)

    edited = test_db_session.get(Order, order.id)
    edited.ad_cost = Decimal("3")
    test_db_session.commit()

    service.deallocate_campaign_costs(campaign.id, test_business.id)

    assert _ad_cost(test_db_session, order) == Decimal("0")


def test_overlapping_deallocations_reverse_each_log_once(test_db_session, test_business, make_product, make_order, make_campaign, monkeypatch):
    a = make_product("A")
    order = make_order(DAY, [(a, 1)], ad_cost="5")
    campaign = make_campaign(DAY, {a: "20"})
    service = AdCostAllocationService(test_db_session)
    service.allocate_campaign_costs(campaign.id, test_business.id)

    # Logs read before a concurrent call finished its own deallocation
    stale_logs = service._cost_logs(campaign.id, test_business.id)
    service.deallocate_campaign_costs(campaign.id, test_business.id)
    monkeypatch.setattr(service, "_cost_logs", lambda *args: stale_logs)

    result = service.deallocate_campaign_costs(campaign.id, test_business.id)

    assert result.orders_updated == 0
    assert result.total_cost_allocated == Decimal("0")
    assert _ad_cost(test_db_session, order) == Decimal("5")
    assert test_db_session.query(AuditLog).filter(AuditLog.action == "deallocate").count() == 1


def test_deallocating_an_unallocated_campaign_is_a_no_op(test_db_session, test_business, make_product, make_campaign):
    campaign = make_campaign(DAY, {make_product("A"): "20"})

    result = AdCostAllocationService(test_db_session).deallocate_campaign_costs(campaign.id, test_business.id)

    assert result.success
    assert result.orders_updated == 0
    assert test_db_session.query(AuditLog).filter(AuditLog.action == "deallocate").count() == 0


def test_reallocate_picks_up_orders_added_after_first_allocation(test_db_session, test_business, make_product, make_order, make_campaign):
    a = make_product("A")
    first = make_order(DAY, [(a, 1)])
    campaign = make_campaign(DAY, {a: "40"})
    service = AdCostAllocationService(test_db_session)
    service.allocate_campaign_costs(campaign.id, test_business.id)
    late = make_order(DAY, [(a, 1)])

    result = service.reallocate_campaign_costs(campaign.id, test_business.id)

    assert result.orders_updated == 2
    assert _ad_cost(test_db_session, first) == Decimal("20")
    assert _ad_cost(test_db_session, late) == Decimal("20")
    assert len(_logs(test_db_session, campaign)) == 2


def test_allocate_all_pending_continues_past_a_failing_campaign(
    test_db_session, test_business, make_product, make_order, make_campaign, monkeypatch
):
    a = make_product("A")
    order = make_order(DAY, [(a, 1)])
    broken = make_campaign(date(2026, 3, 9), {a: "10"}, name="Broken")
    good = make_campaign(DAY, {a: "25"}, name="Good")
    service = AdCostAllocationService(test_db_session)

    original = service.allocate_campaign_costs

    def flaky(campaign_id, business_id, user_id=None):
        if campaign_id == broken.id:
            raise AllocationError("Failed to allocate campaign costs")
        return original(campaign_id, business_id, user_id=user_id)

    monkeypatch.setattr(service, "allocate_campaign_costs", flaky)

    result = service.allocate_all_pending_campaigns(test_business.id)

    assert result.success is False
    assert result.errors == ["Broken: Failed to allocate campaign costs"]
    assert result.orders_updated == 1
    assert result.total_cost_allocated == Decimal("25")
    assert _ad_cost(test_db_session, order) == Decimal("25")
    assert test_db_session.get(AdCampaign, good.id).is_allocated is True
    assert test_db_session.get(AdCampaign, broken.id).is_allocated is False


def test_allocate_all_pending_skips_allocated_campaigns(test_db_session, test_business, make_product, make_order, make_campaign):
    a = make_product("A")
    order = make_order(DAY, [(a, 1)])
    done = make_campaign(DAY, {a: "10"})
    pending = make_campaign(DAY, {a: "15"})
    service = AdCostAllocationService(test_db_session)
    service.allocate_campaign_costs(done.id, test_business.id)

    result = service.allocate_all_pending_campaigns(test_business.id)

    assert result.success
    assert result.errors == []
    assert _ad_cost(test_db_session, order) == Decimal("25")
    assert test_db_session.get(AdCampaign, pending.id).is_allocated is True


def test_allocation_is_audited(test_db_session, test_business, test_user, two_product_day):
    AdCostAllocationService(test_db_session).allocate_campaign_costs(
        two_product_day["campaign"].id, test_business.id, user_id=test_user.id
    )

    entry = test_db_session.query(AuditLog).filter(AuditLog.action == "allocate").one()
    assert entry.entity_type == "ad_campaign"
    assert entry.entity_id == str(two_product_day["campaign"].id)
    assert entry.after["orders_updated"] == 2


def test_deleting_allocated_campaign_removes_its_cost(test_db_session, test_business, make_product, make_order, make_campaign):
    a = make_product("A")
    order = make_order(DAY, [(a, 1)], ad_cost="5")
    campaign = make_campaign(DAY, {a: "20"})
    AdCostAllocationService(test_db_session).allocate_campaign_costs(campaign.id, test_business.id)

    AdvertisingService(test_db_session).delete_campaign(campaign.id, test_business.id)

    assert test_db_session.get(AdCampaign, campaign.id) is None
    assert _ad_cost(test_db_session, order) == Decimal("5")
    assert test_db_session.query(AdCostLog).count() == 0
