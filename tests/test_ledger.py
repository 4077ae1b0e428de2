import asyncio
import json

import pytest
import sqlalchemy as sa
from prometheus_client import REGISTRY

from marketplace.common.database import AsyncSessionLocal
from marketplace.common.errors import CapacityExceeded, InvalidArgument, NotFound
from marketplace.groups.model import ProductGroup
from marketplace.groups.service import add_committed_quantity, get_group, set_group_status


async def test_new_group_starts_empty_and_pending(make_group):
    group = await make_group(quantity=100)

    assert group["current_quantity"] == 0
    assert group["status"] == "pending"
    assert group["available"] == 100
    assert group["is_full"] is False


async def test_fill_scenario_accepts_rejects_then_fills(make_group):
    group = await make_group(quantity=100)

    result = await add_committed_quantity(group["id"], 60)
    assert result["group"]["current_quantity"] == 60
    assert result["isFull"] is False
    assert result["available"] == 40

    with pytest.raises(CapacityExceeded) as exc_info:
        await add_committed_quantity(group["id"], 50)
    assert exc_info.value.available == 40
    assert exc_info.value.requested == 50
    assert (await get_group(group["id"]))["current_quantity"] == 60

    result = await add_committed_quantity(group["id"], 40)
    assert result["group"]["current_quantity"] == 100
    assert result["isFull"] is True
    assert result["available"] == 0


async def test_full_group_rejects_any_further_quantity(make_group):
    group = await make_group(quantity=5)
    await add_committed_quantity(group["id"], 5)

    with pytest.raises(CapacityExceeded) as exc_info:
        await add_committed_quantity(group["id"], 1)

    assert exc_info.value.available == 0


async def test_current_quantity_tracks_sum_of_accepted_additions(make_group):
    group = await make_group(quantity=50)
    accepted = 0

    for amount in (7, 20, 30, 13, 9, 1, 5, 1):
        try:
            result = await add_committed_quantity(group["id"], amount)
        except CapacityExceeded as e:
            assert amount > 50 - accepted
            assert e.available == 50 - accepted
        else:
            accepted += amount
            assert result["group"]["current_quantity"] == accepted
        assert accepted <= 50
        assert (await get_group(group["id"]))["current_quantity"] == accepted

    assert accepted == 50


async def test_unknown_group_is_not_found():
    with pytest.raises(NotFound):
        await add_committed_quantity(9999, 10)


@pytest.mark.parametrize("huge", [10**20, "100000000000000000000", 2**63 - 1])
async def test_quantity_beyond_any_target_is_capacity_exceeded(make_group, huge):
    group = await make_group(quantity=100)
    await add_committed_quantity(group["id"], 30)

    with pytest.raises(CapacityExceeded) as exc_info:
        await add_committed_quantity(group["id"], huge)

    assert exc_info.value.available == 70
    assert exc_info.value.requested == int(huge)
    assert (await get_group(group["id"]))["current_quantity"] == 30


async def test_huge_quantity_for_unknown_group_is_not_found():
    with pytest.raises(NotFound):
        await add_committed_quantity(9999, 10**20)


@pytest.mark.parametrize("bad", [0, -5, "abc", None, True, 1.5, [3]])
async def test_non_positive_or_non_integer_quantity_is_rejected(make_group, bad):
    group = await make_group(quantity=100)

    with pytest.raises(InvalidArgument):
        await add_committed_quantity(group["id"], bad)

    assert (await get_group(group["id"]))["current_quantity"] == 0


async def test_numeric_string_quantity_is_accepted(make_group):
    group = await make_group(quantity=100)

    result = await add_committed_quantity(group["id"], "25")

    assert result["group"]["current_quantity"] == 25


async def test_unset_current_quantity_counts_as_zero(make_group):
    group = await make_group(quantity=30)
    async with AsyncSessionLocal() as session:
        await session.execute(
            sa.update(ProductGroup).where(ProductGroup.id == group["id"]).values(current_quantity=None)
        )
        await session.commit()

    result = await add_committed_quantity(group["id"], 30)

    assert result["group"]["current_quantity"] == 30
    assert result["isFull"] is True


async def test_concurrent_additions_never_overshoot_target(make_group):
    group = await make_group(quantity=100)

    results = await asyncio.gather(
        *(add_committed_quantity(group["id"], 10) for _ in range(15)),
        return_exceptions=True,
    )

    accepted = [r for r in results if isinstance(r, dict)]
    rejected = [r for r in results if isinstance(r, CapacityExceeded)]
    assert len(accepted) == 10
    assert len(rejected) == 5
    final = await get_group(group["id"])
    assert final["current_quantity"] == 100
    assert final["is_full"] is True


async def test_rejections_are_counted(make_group):
    group = await make_group(quantity=10)
    before = REGISTRY.get_sample_value("group_capacity_rejections_total") or 0.0

    with pytest.raises(CapacityExceeded):
        await add_committed_quantity(group["id"], 11)

    assert REGISTRY.get_sample_value("group_capacity_rejections_total") == before + 1


async def test_accepted_addition_publishes_group_update(make_group, fake_redis):
    group = await make_group(quantity=20)

    await add_committed_quantity(group["id"], 20)

    assert len(fake_redis.published) == 1
    channel, message = fake_redis.published[0]
    assert channel == "group-updates"
    payload = json.loads(message)
    assert payload == {
        "group_id": group["id"],
        "current_quantity": 20,
        "quantity": 20,
        "available": 0,
        "is_full": True,
        "status": "pending",
    }


async def test_rejected_addition_publishes_nothing(make_group, fake_redis):
    group = await make_group(quantity=20)

    with pytest.raises(CapacityExceeded):
        await add_committed_quantity(group["id"], 21)

    assert fake_redis.published == []


async def test_redis_outage_does_not_fail_committed_addition(make_group, monkeypatch, fake_redis):
    group = await make_group(quantity=20)

    async def _broken():
        raise ConnectionError("redis down")

    monkeypatch.setattr("marketplace.groups.service.get_redis", _broken)

    result = await add_committed_quantity(group["id"], 5)

    assert result["group"]["current_quantity"] == 5


@pytest.mark.parametrize("status", ["accepted", "declined", "delivered"])
async def test_settable_statuses(make_group, status):
    group = await make_group()

    updated = await set_group_status(group["id"], status)

    assert updated["status"] == status


async def test_statuses_have_no_enforced_order(make_group):
    group = await make_group()

    await set_group_status(group["id"], "delivered")
    await set_group_status(group["id"], "declined")
    updated = await set_group_status(group["id"], "accepted")

    assert updated["status"] == "accepted"


@pytest.mark.parametrize("status", ["pending", "shipped", "", None, 3])
async def test_unrecognized_status_is_invalid(make_group, status):
    group = await make_group()

    with pytest.raises(InvalidArgument):
        await set_group_status(group["id"], status)

    assert (await get_group(group["id"]))["status"] == "pending"


async def test_status_of_unknown_group_is_not_found():
    with pytest.raises(NotFound):
        await set_group_status(9999, "accepted")
