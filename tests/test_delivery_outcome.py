"""Tests for delivery outcome bookkeeping."""

import pytest
from sqlalchemy import update

from backoffice.domain.services.delivery_outcome_service import DeliveryOutcomeService
from backoffice.persistence.models import Customer


@pytest.mark.asyncio
async def test_fourth_failure_deactivates_once(db_session, customer):
    """Crossing the threshold deactivates SMS exactly once."""
    customer.sms_delivery_failures = 3
    await db_session.commit()

    service = DeliveryOutcomeService(db_session)
    await service.apply_outcome(customer.id, "failed", 30003)
    await db_session.refresh(customer)

    assert customer.sms_delivery_failures == 4
    assert customer.sms_status == "sms_deactivated"
    assert customer.sms_opt_in is False
    assert customer.sms_deactivation_reason == "delivery_failures"
    assert customer.last_sms_failure_reason == "Unreachable destination handset"
    deactivated_at = customer.sms_deactivated_at
    assert deactivated_at is not None

    await service.apply_outcome(customer.id, "undelivered")
    await db_session.refresh(customer)

    assert customer.sms_delivery_failures == 5
    assert customer.sms_status == "sms_deactivated"
    assert customer.sms_deactivated_at == deactivated_at
    assert customer.last_sms_failure_reason == "Message delivery failed"


@pytest.mark.asyncio
async def test_failures_below_threshold_keep_sms_active(db_session, customer):
    service = DeliveryOutcomeService(db_session)

    for _ in range(3):
        await service.apply_outcome(customer.id, "failed")
    await db_session.refresh(customer)

    assert customer.sms_delivery_failures == 3
    assert customer.sms_status == "active"
    assert customer.sms_opt_in is True


@pytest.mark.asyncio
async def test_delivery_resets_failures(db_session, customer):
    customer.sms_delivery_failures = 2
    customer.last_sms_failure_reason = "Message blocked"
    await db_session.commit()

    await DeliveryOutcomeService(db_session).apply_outcome(customer.id, "delivered")
    await db_session.refresh(customer)

    assert customer.sms_delivery_failures == 0
    assert customer.last_sms_failure_reason is None
    assert customer.last_successful_sms_at is not None


@pytest.mark.asyncio
async def test_opted_out_customer_is_not_deactivated(db_session, customer):
    customer.sms_status = "opted_out"
    customer.sms_opt_in = False
    customer.sms_delivery_failures = 3
    await db_session.commit()

    await DeliveryOutcomeService(db_session).apply_outcome(customer.id, "failed")
    await db_session.refresh(customer)

    assert customer.sms_delivery_failures == 4
    assert customer.sms_status == "opted_out"
    assert customer.sms_deactivated_at is None


@pytest.mark.asyncio
async def test_non_terminal_status_has_no_effect(db_session, customer):
    await DeliveryOutcomeService(db_session).apply_outcome(customer.id, "sent")
    await db_session.refresh(customer)

    assert customer.sms_delivery_failures == 0
    assert customer.last_successful_sms_at is None


@pytest.mark.asyncio
async def test_missing_customer_is_a_noop(db_session):
    await DeliveryOutcomeService(db_session).apply_outcome(9999, "failed")
    await DeliveryOutcomeService(db_session).apply_outcome(None, "failed")


@pytest.mark.asyncio
async def test_failure_increments_stored_counter_not_cached_copy(db_session, customer):
    """Another writer's increment is kept even when this session holds a stale copy."""
    await db_session.execute(
        update(Customer)
        .where(Customer.id == customer.id)
        .values(sms_delivery_failures=2)
        .execution_options(synchronize_session=False)
    )
    await db_session.commit()
    assert customer.sms_delivery_failures == 0

    await DeliveryOutcomeService(db_session).apply_outcome(customer.id, "failed")
    await db_session.refresh(customer)

    assert customer.sms_delivery_failures == 3

