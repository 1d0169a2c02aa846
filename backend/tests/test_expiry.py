from __future__ import annotations

from unittest.mock import patch

from app.core.errors import PersistenceError
from app.domain import BlockHeader
from app.models import Market, MarketStatus
from ingestion.projector import project_event
from pipelines import expiry_run
from pipelines.expiry_run import ExpirySweeper

from conftest import ALICE

NOW = 1_750_000_000


def _seed(session_factory, decoder, make_log, market_id, *, end_time, resolve=None):
    header = BlockHeader(number=100 + market_id, hash=f"0x{market_id:064x}", parent_hash=None, timestamp=NOW - 1000)
    logs = [
        make_log(
            "MarketCreated",
            block_number=header.number,
            marketId=market_id,
            question=f"Market {market_id}",
            creator=ALICE,
            endTime=end_time,
        )
    ]
    if resolve is not None:
        logs.append(
            make_log("MarketResolved", block_number=header.number, log_index=1, marketId=market_id, outcome=resolve)
        )
    with session_factory() as session:
        for log in logs:
            project_event(session, decoder.decode(log), header)
        session.commit()


def _status(session_factory, market_id):
    with session_factory() as session:
        return session.get(Market, market_id).status


def test_past_end_time_market_expires_and_stays_expired(session_factory, decoder, make_log):
    _seed(session_factory, decoder, make_log, 1, end_time=NOW - 10)
    sweeper = ExpirySweeper(session_factory=session_factory, clock=lambda: NOW)

    first = sweeper.run()
    second = sweeper.run()

    assert first.status == "completed"
    assert first.expired_markets == 1
    assert first.checked_at == NOW
    assert second.expired_markets == 0
    assert _status(session_factory, 1) == MarketStatus.EXPIRED.value


def test_end_time_equal_to_now_expires(session_factory, decoder, make_log):
    _seed(session_factory, decoder, make_log, 1, end_time=NOW)

    summary = ExpirySweeper(session_factory=session_factory, clock=lambda: NOW).run()

    assert summary.expired_markets == 1


def test_future_and_resolved_markets_are_untouched(session_factory, decoder, make_log):
    _seed(session_factory, decoder, make_log, 1, end_time=NOW + 3600)
    _seed(session_factory, decoder, make_log, 2, end_time=NOW - 3600, resolve=True)

    summary = ExpirySweeper(session_factory=session_factory, clock=lambda: NOW).run()

    assert summary.expired_markets == 0
    assert _status(session_factory, 1) == MarketStatus.ACTIVE.value
    assert _status(session_factory, 2) == MarketStatus.RESOLVED.value


def test_resolution_after_expiry_wins(session_factory, decoder, make_log):
    _seed(session_factory, decoder, make_log, 1, end_time=NOW - 10)
    sweeper = ExpirySweeper(session_factory=session_factory, clock=lambda: NOW)
    sweeper.run()

    resolution = make_log("MarketResolved", block_number=300, marketId=1, outcome=False)
    with session_factory() as session:
        header = BlockHeader(number=300, hash="0x" + "ab" * 32, parent_hash=None, timestamp=NOW + 5)
        project_event(session, decoder.decode(resolution), header)
        session.commit()
    sweeper.run()

    assert _status(session_factory, 1) == MarketStatus.RESOLVED.value


def test_busy_sweep_is_dropped(session_factory):
    sweeper = ExpirySweeper(session_factory=session_factory, clock=lambda: NOW)
    nested = []

    def reentrant_expire(session, now):
        nested.append(sweeper.run())
        return 0

    with patch("pipelines.expiry_run.crud.expire_markets", side_effect=reentrant_expire):
        summary = sweeper.run()

    assert summary.status == "completed"
    assert [item.status for item in nested] == ["busy"]


def test_persistence_failure_is_reported(session_factory):
    sweeper = ExpirySweeper(session_factory=session_factory, clock=lambda: NOW)

    with patch(
        "pipelines.expiry_run.session_scope",
        side_effect=PersistenceError("database is locked"),
    ):
        summary = sweeper.run()

    assert summary.status == "failed"
    assert summary.error == "database is locked"
    assert summary.to_dict()["expired_markets"] == 0


@patch("pipelines.expiry_run.init_db")
@patch("pipelines.expiry_run.ExpirySweeper")
def test_main_sweeps_against_given_timestamp(mock_sweeper, mock_init_db):
    summary = expiry_run.main(["--now", str(NOW)])

    mock_init_db.assert_called_once_with()
    clock = mock_sweeper.call_args.kwargs["clock"]
    assert clock() == NOW
    assert summary is mock_sweeper.return_value.run.return_value


@patch("pipelines.expiry_run.init_db")
@patch("pipelines.expiry_run.ExpirySweeper")
def test_main_defaults_to_wall_clock(mock_sweeper, mock_init_db):
    expiry_run.main([])

    assert mock_sweeper.call_args.kwargs["clock"] is expiry_run.time.time
