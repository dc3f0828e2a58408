"""
Tests for LifecycleService.
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hundi.errors import (
    AmountNotAllowed,
    AmountRequired,
    DonationNotFound,
    DonorNotFound,
    DuplicateCycleRecord,
    HundiError,
    InactiveDonor,
    InvalidStatusTransition,
    NotesRequired,
    RepositoryFailure,
)
from hundi.lifecycle.states import DonationOutcome, DonorStatus
from hundi.models.donation import Donation
from hundi.models.donor import Donor
from hundi.repositories.donation_repository import DonationRepository
from hundi.services.donor_service import DonorService
from hundi.services.group_service import GroupService
from hundi.services.lifecycle_service import LifecycleService
from hundi.services.reconciliation_service import ReconciliationService

from conftest import reload

UTC = timezone.utc
MARCH_10 = datetime(2024, 3, 10, 12, 0, tzinfo=UTC)


async def _donation_count(db, donor_id) -> int:
    result = await db.execute(
        select(func.count(Donation.id)).where(Donation.donor_id == donor_id)
    )
    return result.scalar()


@pytest.fixture
def service(db, clock):
    return LifecycleService(db, clock=clock)


class TestRecordCollection:
    """Tests for record_collection()."""
    
    @pytest.mark.asyncio
    async def test_collection_on_pending_donor(self, db, service, make_donor):
        donor = await make_donor()
        
        result = await service.record_collection(donor.id, 500, MARCH_10, "ok", "collector-1")
        await db.commit()
        
        assert result.donation.cycle_key == "2024-03"
        assert result.donation.outcome == DonationOutcome.COLLECTED.value
        assert result.donation.amount == Decimal("500")
        assert result.donation.collected_by == "collector-1"
        
        donor = await reload(db, donor)
        assert donor.status == DonorStatus.COLLECTED.value
        assert donor.collection_date == datetime(2024, 4, 10, 12, 0, tzinfo=UTC)
        assert donor.status_history[-1].status == DonorStatus.COLLECTED.value
        assert donor.status_history[-1].note == "ok"
    
    @pytest.mark.asyncio
    async def test_next_date_clamped_to_end_of_february(self, db, service, make_donor):
        donor = await make_donor(collection_date=datetime(2024, 1, 31, 12, 0, tzinfo=UTC))
        
        result = await service.record_collection(
            donor.id, 100, datetime(2024, 1, 31, 12, 0, tzinfo=UTC), None, "collector-1"
        )
        
        assert result.donor.collection_date == datetime(2024, 2, 29, 12, 0, tzinfo=UTC)
    
    @pytest.mark.asyncio
    async def test_next_date_from_declared_timestamp_not_now(self, service, make_donor):
        donor = await make_donor()
        
        result = await service.record_collection(
            donor.id, 100, datetime(2024, 3, 2, 12, 0, tzinfo=UTC), None, "collector-1"
        )
        
        assert result.donor.collection_date == datetime(2024, 4, 2, 12, 0, tzinfo=UTC)
    
    @pytest.mark.asyncio
    async def test_amount_required(self, db, service, make_donor):
        donor = await make_donor()
        
        with pytest.raises(AmountRequired):
            await service.record_collection(donor.id, 0, MARCH_10, None, "collector-1")
        
        assert await _donation_count(db, donor.id) == 0
        assert (await reload(db, donor)).status == DonorStatus.PENDING.value
    
    @pytest.mark.asyncio
    async def test_sub_cent_amount_rejected(self, db, service, make_donor):
        donor = await make_donor()
        
        with pytest.raises(AmountRequired):
            await service.record_collection(donor.id, "0.001", MARCH_10, None, "collector-1")
        
        assert await _donation_count(db, donor.id) == 0
    
    @pytest.mark.asyncio
    async def test_amount_stored_in_cents(self, db, service, make_donor):
        donor = await make_donor()
        
        result = await service.record_collection(donor.id, "99.999", MARCH_10, None, "collector-1")
        await db.commit()
        
        stored = await db.get(Donation, result.donation.id, populate_existing=True)
        assert stored.amount == Decimal("100.00")
        assert stored.outcome == DonationOutcome.COLLECTED.value
    
    @pytest.mark.asyncio
    async def test_second_collection_same_cycle_is_duplicate(self, db, service, make_donor):
        donor = await make_donor()
        await service.record_collection(donor.id, 500, MARCH_10, None, "collector-1")
        await db.commit()
        
        with pytest.raises(DuplicateCycleRecord):
            await service.record_collection(
                donor.id, 300, MARCH_10 + timedelta(days=5), None, "collector-2"
            )
        
        assert await _donation_count(db, donor.id) == 1
    
    @pytest.mark.asyncio
    async def test_unique_constraint_stops_racing_collection(self, db, service, make_donor):
        donor = await make_donor()
        await service.record_collection(donor.id, 500, MARCH_10, None, "collector-1")
        await db.commit()
        
        # A racing caller that passed the lookup before the first write committed
        with patch.object(service.rules, "check_new_record", AsyncMock(return_value=None)):
            with pytest.raises(DuplicateCycleRecord):
                await service.record_collection(donor.id, 300, MARCH_10, None, "collector-2")
        
        await db.commit()
        assert await _donation_count(db, donor.id) == 1
        donor = await reload(db, donor)
        assert donor.collection_date == datetime(2024, 4, 10, 12, 0, tzinfo=UTC)
        assert len(donor.status_history) == 2
    
    @pytest.mark.asyncio
    async def test_next_cycle_collection_allowed(self, service, make_donor):
        donor = await make_donor()
        await service.record_collection(donor.id, 500, MARCH_10, None, "collector-1")
        
        result = await service.record_collection(
            donor.id, 500, datetime(2024, 4, 10, 12, 0, tzinfo=UTC), None, "collector-1"
        )
        
        assert result.donation.cycle_key == "2024-04"
        assert result.donor.collection_date == datetime(2024, 5, 10, 12, 0, tzinfo=UTC)
    
    @pytest.mark.asyncio
    async def test_skipped_donor_cannot_be_collected(self, db, service, make_donor):
        donor = await make_donor(status=DonorStatus.SKIPPED)
        
        with pytest.raises(InvalidStatusTransition):
            await service.record_collection(donor.id, 500, MARCH_10, None, "collector-1")
        
        assert await _donation_count(db, donor.id) == 0
    
    @pytest.mark.asyncio
    async def test_unknown_donor(self, service):
        with pytest.raises(DonorNotFound):
            await service.record_collection(uuid.uuid4(), 500, MARCH_10, None, "collector-1")
    
    @pytest.mark.asyncio
    async def test_inactive_donor(self, service, make_donor):
        donor = await make_donor(is_active=False)
        with pytest.raises(InactiveDonor):
            await service.record_collection(donor.id, 500, MARCH_10, None, "collector-1")
    
    @pytest.mark.asyncio
    async def test_claims_cycle_placeholder(self, db, clock, service, make_donor):
        donor = await make_donor()
        init = await ReconciliationService(db, clock=clock).initialize_cycle_records(MARCH_10)
        assert init.initialized == 1
        
        result = await service.record_collection(donor.id, 750, MARCH_10, None, "collector-1")
        
        assert result.donation.outcome == DonationOutcome.COLLECTED.value
        assert result.donation.amount == Decimal("750")
        assert result.donation.collected_by == "collector-1"
        assert await _donation_count(db, donor.id) == 1


class TestRecordSkip:
    """Tests for record_skip()."""
    
    @pytest.mark.asyncio
    async def test_blank_notes_rejected(self, db, service, make_donor):
        donor = await make_donor()
        
        with pytest.raises(NotesRequired):
            await service.record_skip(donor.id, "", "collector-1")
        
        assert await _donation_count(db, donor.id) == 0
        donor = await reload(db, donor)
        assert donor.status == DonorStatus.PENDING.value
        assert len(donor.status_history) == 1
    
    @pytest.mark.asyncio
    async def test_skip_reschedules_from_now(self, db, clock, service, make_donor):
        donor = await make_donor(collection_date=datetime(2024, 3, 1, 12, 0, tzinfo=UTC))
        
        result = await service.record_skip(donor.id, "Family away", "collector-1")
        
        assert result.donation.outcome == DonationOutcome.SKIPPED.value
        assert result.donation.amount == Decimal("0")
        assert result.donation.cycle_key == "2024-03"
        assert result.donation.collection_date == clock()
        assert result.donor.status == DonorStatus.SKIPPED.value
        assert result.donor.collection_date == datetime(2024, 4, 10, 12, 0, tzinfo=UTC)
        assert result.donor.status_history[-1].note == "Family away"
    
    @pytest.mark.asyncio
    async def test_collected_donor_cannot_skip(self, service, make_donor):
        donor = await make_donor(status=DonorStatus.COLLECTED)
        
        with pytest.raises(InvalidStatusTransition):
            await service.record_skip(donor.id, "changed mind", "collector-1")
    
    @pytest.mark.asyncio
    async def test_skip_after_collection_same_cycle_is_duplicate(self, db, service, make_donor):
        donor = await make_donor()
        await service.record_collection(donor.id, 500, MARCH_10, None, "collector-1")
        await service.update_status(donor.id, DonorStatus.PENDING, "re-open", "admin")
        
        with pytest.raises(DuplicateCycleRecord):
            await service.record_skip(donor.id, "no money", "collector-1")


class TestUpdateStatus:
    """Tests for update_status()."""
    
    @pytest.mark.asyncio
    @pytest.mark.parametrize("start,target", [
        (DonorStatus.COLLECTED, DonorStatus.SKIPPED),
        (DonorStatus.SKIPPED, DonorStatus.COLLECTED),
    ])
    async def test_illegal_transition_leaves_donor_unchanged(self, db, service, make_donor, start, target):
        donor = await make_donor(status=start)
        before_date = donor.collection_date
        before_len = len(donor.status_history)
        
        with pytest.raises(InvalidStatusTransition):
            await service.update_status(donor.id, target, None, "admin")
        
        donor = await reload(db, donor)
        assert donor.status == start.value
        assert donor.collection_date == before_date
        assert len(donor.status_history) == before_len
    
    @pytest.mark.asyncio
    async def test_reopen_keeps_collection_date(self, service, make_donor):
        donor = await make_donor(status=DonorStatus.COLLECTED)
        before_date = donor.collection_date
        
        donor = await service.update_status(donor.id, DonorStatus.PENDING, None, "admin")
        
        assert donor.status == DonorStatus.PENDING.value
        assert donor.collection_date == before_date
        assert donor.status_history[-1].note == "Status changed to pending"
    
    @pytest.mark.asyncio
    @pytest.mark.parametrize("target", [DonorStatus.COLLECTED, DonorStatus.SKIPPED])
    async def test_close_advances_from_now(self, clock, service, make_donor, target):
        donor = await make_donor(collection_date=datetime(2024, 1, 5, tzinfo=UTC))
        
        donor = await service.update_status(donor.id, target, "manual fix", "admin")
        
        assert donor.status == target.value
        assert donor.collection_date == datetime(2024, 4, 10, 12, 0, tzinfo=UTC)
    
    @pytest.mark.asyncio
    async def test_does_not_write_donation(self, db, service, make_donor):
        donor = await make_donor()
        await service.update_status(donor.id, DonorStatus.COLLECTED, None, "admin")
        assert await _donation_count(db, donor.id) == 0
    
    @pytest.mark.asyncio
    async def test_history_is_ordered_and_append_only(self, db, clock, service, make_donor):
        donor = await make_donor()
        first_entry = donor.status_history[0]
        
        await service.update_status(donor.id, DonorStatus.COLLECTED, None, "admin")
        clock.now += timedelta(hours=1)
        await service.update_status(donor.id, DonorStatus.PENDING, None, "admin")
        clock.now += timedelta(hours=1)
        await service.update_status(donor.id, DonorStatus.SKIPPED, "away", "admin")
        await db.commit()
        
        donor = await reload(db, donor)
        history = donor.status_history
        assert [h.status for h in history] == ["pending", "collected", "pending", "skipped"]
        assert [h.sequence for h in history] == [1, 2, 3, 4]
        assert history[0].id == first_entry.id
        assert all(a.timestamp <= b.timestamp for a, b in zip(history, history[1:]))
        assert history[-1].status == donor.status
    
    @pytest.mark.asyncio
    async def test_unknown_donor(self, service):
        with pytest.raises(DonorNotFound):
            await service.update_status(uuid.uuid4(), DonorStatus.PENDING, None, "admin")


class TestDonationCorrections:
    """Tests for update_donation() and delete_donation()."""
    
    @pytest.mark.asyncio
    async def test_update_amount_and_notes(self, service, make_donor):
        donor = await make_donor()
        created = await service.record_collection(donor.id, 500, MARCH_10, None, "collector-1")
        
        donation = await service.update_donation(created.donation.id, amount="650", notes="recount")
        
        assert donation.amount == Decimal("650")
        assert donation.notes == "recount"
        assert donation.cycle_key == "2024-03"
    
    @pytest.mark.asyncio
    async def test_update_rejects_zero_amount_on_collection(self, service, make_donor):
        donor = await make_donor()
        created = await service.record_collection(donor.id, 500, MARCH_10, None, "collector-1")
        
        with pytest.raises(AmountRequired):
            await service.update_donation(created.donation.id, amount=0)
    
    @pytest.mark.asyncio
    async def test_move_into_free_cycle(self, service, make_donor):
        donor = await make_donor()
        created = await service.record_collection(donor.id, 500, MARCH_10, None, "collector-1")
        
        donation = await service.update_donation(
            created.donation.id, collection_timestamp=datetime(2024, 2, 20, 12, 0, tzinfo=UTC)
        )
        
        assert donation.cycle_key == "2024-02"
    
    @pytest.mark.asyncio
    async def test_move_into_taken_cycle_rejected(self, db, service, make_donor):
        donor = await make_donor()
        march = await service.record_collection(donor.id, 500, MARCH_10, None, "collector-1")
        await service.record_collection(
            donor.id, 500, datetime(2024, 4, 10, 12, 0, tzinfo=UTC), None, "collector-1"
        )
        await db.commit()
        
        with pytest.raises(DuplicateCycleRecord):
            await service.update_donation(
                march.donation.id, collection_timestamp=datetime(2024, 4, 20, 12, 0, tzinfo=UTC)
            )
    
    @pytest.mark.asyncio
    async def test_update_unknown_donation(self, service):
        with pytest.raises(DonationNotFound):
            await service.update_donation(uuid.uuid4(), amount=10)
    
    @pytest.mark.asyncio
    async def test_delete_current_record_reopens_donor(self, db, service, make_donor):
        donor = await make_donor()
        created = await service.record_collection(donor.id, 500, MARCH_10, None, "collector-1")
        
        reopened = await service.delete_donation(created.donation.id, "admin")
        await db.commit()
        
        assert reopened is not None
        donor = await reload(db, donor)
        assert donor.status == DonorStatus.PENDING.value
        assert "removed by admin" in donor.status_history[-1].note
        assert await _donation_count(db, donor.id) == 0
    
    @pytest.mark.asyncio
    async def test_delete_past_record_keeps_status(self, db, service, make_donor):
        donor = await make_donor()
        february = await service.record_collection(
            donor.id, 500, datetime(2024, 2, 10, 12, 0, tzinfo=UTC), None, "collector-1"
        )
        
        reopened = await service.delete_donation(february.donation.id, "admin")
        
        assert reopened is None
        assert (await reload(db, donor)).status == DonorStatus.COLLECTED.value
    
    @pytest.mark.asyncio
    async def test_delete_placeholder_keeps_status(self, db, clock, service, make_donor):
        donor = await make_donor()
        await service.record_collection(
            donor.id, 500, datetime(2024, 2, 20, 12, 0, tzinfo=UTC), None, "collector-1"
        )
        await ReconciliationService(db, clock=clock).initialize_cycle_records(MARCH_10)
        placeholder = await DonationRepository(db).find_by_donor_and_cycle(donor.id, "2024-03")
        assert placeholder.is_placeholder
        history_len = len((await reload(db, donor)).status_history)
        
        reopened = await service.delete_donation(placeholder.id, "admin")
        await db.commit()
        
        assert reopened is None
        donor = await reload(db, donor)
        assert donor.status == DonorStatus.COLLECTED.value
        assert len(donor.status_history) == history_len
        assert await _donation_count(db, donor.id) == 1
    
    @pytest.mark.asyncio
    async def test_amount_rejected_on_skipped_record(self, db, service, make_donor):
        donor = await make_donor()
        skipped = await service.record_skip(donor.id, "away", "collector-1")
        
        with pytest.raises(AmountNotAllowed):
            await service.update_donation(skipped.donation.id, amount=100)
    
    @pytest.mark.asyncio
    async def test_placeholder_accepts_notes_but_not_amount(self, db, clock, service, make_donor):
        donor = await make_donor()
        await ReconciliationService(db, clock=clock).initialize_cycle_records(MARCH_10)
        placeholder = await DonationRepository(db).find_by_donor_and_cycle(donor.id, "2024-03")
        
        with pytest.raises(AmountNotAllowed):
            await service.update_donation(placeholder.id, amount="250")
        
        updated = await service.update_donation(placeholder.id, notes="Visit after festival")
        assert updated.notes == "Visit after festival"
        assert updated.amount == Decimal("0")
    
    @pytest.mark.asyncio
    async def test_delete_unknown_donation(self, service):
        with pytest.raises(DonationNotFound):
            await service.delete_donation(uuid.uuid4(), "admin")


class TestConcurrentCollections:
    """Two sessions recording the same donor's cycle at the same time."""
    
    @pytest.mark.asyncio
    async def test_only_one_collection_per_cycle(self, shared_engine, clock):
        sessions = async_sessionmaker(shared_engine, class_=AsyncSession, expire_on_commit=False)
        
        async with sessions() as setup:
            await GroupService(setup).ensure_default_groups("setup")
            donor = await DonorService(setup, clock=clock).create_donor(
                hundi_no="H-RACE",
                name="Race Donor",
                mobile_number="9876543210",
                address="1 Market Road",
                created_by="creator-1",
            )
            await setup.commit()
            donor_id = donor.id
        
        looked_up = 0
        both_looked_up = asyncio.Event()
        
        def wait_for_other_lookup(rules):
            lookup = rules.check_new_record
            
            async def check(donor_id, key):
                nonlocal looked_up
                found = await lookup(donor_id, key)
                looked_up += 1
                if looked_up == 2:
                    both_looked_up.set()
                await asyncio.wait_for(both_looked_up.wait(), timeout=5)
                return found
            
            rules.check_new_record = check
        
        async def collect(amount):
            async with sessions() as session:
                service = LifecycleService(session, clock=clock)
                wait_for_other_lookup(service.rules)
                try:
                    result = await service.record_collection(
                        donor_id, amount, MARCH_10, None, f"collector-{amount}"
                    )
                    await session.commit()
                    return result
                except HundiError as e:
                    await session.rollback()
                    return e
        
        outcomes = await asyncio.gather(collect(500), collect(300))
        
        winners = [o for o in outcomes if not isinstance(o, HundiError)]
        losers = [o for o in outcomes if isinstance(o, HundiError)]
        assert len(winners) == 1
        assert len(losers) == 1
        # Lost race surfaces as a duplicate, or as a retryable storage conflict
        assert isinstance(losers[0], DuplicateCycleRecord) or (
            isinstance(losers[0], RepositoryFailure) and losers[0].retryable
        )
        
        async with sessions() as session:
            with pytest.raises(DuplicateCycleRecord):
                await LifecycleService(session, clock=clock).record_collection(
                    donor_id, 300, MARCH_10, None, "collector-retry"
                )
            await session.rollback()
            
            assert await _donation_count(session, donor_id) == 1
            donor = await session.get(Donor, donor_id, populate_existing=True)
            assert donor.status == DonorStatus.COLLECTED.value
            assert [h.status for h in donor.status_history] == ["pending", "collected"]
