"""
Status History and Consistency Tests.

Tests for:
- Append-only status history
- Status change and history row committing together
- Lost-update detection through the version column
"""

import pytest
from sqlalchemy import select, update

from claimflow.core.enums import ClaimStatus
from claimflow.core.errors import ConcurrencyError
from claimflow.db.connection import transaction
from claimflow.models.claim import Claim, ClaimStatusHistory, HistoryImmutableError
from claimflow.services.claim_state_machine import TransitionContext, TransitionEvent


async def load_history(session_maker, claim_id) -> list[ClaimStatusHistory]:
    async with session_maker() as session:
        rows = await session.execute(
            select(ClaimStatusHistory)
            .where(ClaimStatusHistory.claim_id == claim_id)
            .order_by(ClaimStatusHistory.sequence)
        )
        return list(rows.scalars().all())


@pytest.mark.integration
class TestHistoryIsAppendOnly:
    @pytest.mark.asyncio
    async def test_rows_form_a_chain(self, engine, session_maker, submitted_claim):
        claim = await submitted_claim()
        history = await load_history(session_maker, claim.id)

        assert [row.sequence for row in history] == [1, 2, 3]
        assert history[0].previous_status is None
        for earlier, later in zip(history, history[1:]):
            assert later.previous_status == earlier.status
        assert history[-1].status == claim.claim_status
        assert history[-1].user_id == "biller-1"

    @pytest.mark.asyncio
    async def test_history_rows_cannot_be_modified(self, session_maker, make_claim):
        claim = await make_claim()

        with pytest.raises(HistoryImmutableError):
            async with transaction(session_maker) as session:
                row = (await session.execute(
                    select(ClaimStatusHistory).where(ClaimStatusHistory.claim_id == claim.id)
                )).scalar_one()
                row.notes = "rewritten"
                await session.flush()

        history = await load_history(session_maker, claim.id)
        assert history[0].notes == "Claim created"

    @pytest.mark.asyncio
    async def test_history_rows_cannot_be_deleted(self, session_maker, make_claim):
        claim = await make_claim()

        with pytest.raises(HistoryImmutableError):
            async with transaction(session_maker) as session:
                row = (await session.execute(
                    select(ClaimStatusHistory).where(ClaimStatusHistory.claim_id == claim.id)
                )).scalar_one()
                await session.delete(row)
                await session.flush()

        assert len(await load_history(session_maker, claim.id)) == 1


@pytest.mark.integration
class TestAtomicity:
    @pytest.mark.asyncio
    async def test_failed_history_write_rolls_back_status(self, engine, session_maker, make_claim, monkeypatch):
        claim = await make_claim()

        async def failing_append(*args, **kwargs):
            raise RuntimeError("history table unavailable")

        monkeypatch.setattr(engine.deps.store, "append_history", failing_append)

        with pytest.raises(RuntimeError):
            await engine.lifecycle.void_claim(claim.id, notes="Entered in error")

        monkeypatch.undo()
        assert (await engine.claims.get_claim(claim.id)).unwrap().claim_status == ClaimStatus.DRAFT
        assert len(await load_history(session_maker, claim.id)) == 1


@pytest.mark.integration
class TestConcurrency:
    @pytest.mark.asyncio
    async def test_lost_update_is_detected(self, engine, session_maker, make_claim):
        claim = await make_claim()
        store = engine.deps.store

        with pytest.raises(ConcurrencyError):
            async with transaction(session_maker) as session:
                locked = await store.lock(session, claim.id)
                # Another writer commits a change after our read
                await session.execute(
                    update(Claim)
                    .where(Claim.id == locked.id)
                    .values(version=Claim.version + 1)
                    .execution_options(synchronize_session=False)
                )
                await store.transition(
                    session,
                    locked,
                    TransitionContext(
                        claim_id=str(locked.id),
                        current_status=locked.claim_status,
                        target_status=ClaimStatus.VOID,
                        event=TransitionEvent.VOID,
                        reason="Entered in error",
                    ),
                )

        refreshed = (await engine.claims.get_claim(claim.id)).unwrap()
        assert refreshed.claim_status == ClaimStatus.DRAFT
        assert refreshed.version == claim.version
        assert len(await load_history(session_maker, claim.id)) == 1

    @pytest.mark.asyncio
    async def test_each_transition_bumps_the_version(self, engine, make_claim):
        claim = await make_claim()
        await engine.submission.validate_and_advance(claim.id)

        refreshed = (await engine.claims.get_claim(claim.id)).unwrap()
        assert refreshed.version == claim.version + 1

    @pytest.mark.asyncio
    async def test_concurrency_error_maps_to_conflict(self):
        error = ConcurrencyError("Claim was modified by another request")
        assert error.status_code == 409
        assert error.to_dict()["error"] == "concurrency"
