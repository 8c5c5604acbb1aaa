"""
Tests for the wallet sync engine.
"""

import asyncio

import pytest
from conftest import block_hash, make_blocks

from krkwallet.backends.base import Block, MalformedResponse, NodeInfo, SyncData, TransportFailure
from krkwallet.wallet.ledger import EmptyLedger
from krkwallet.wallet.service import (
    AlreadyRunning,
    NotRunning,
    SyncEngine,
    SyncError,
    SyncState,
)


@pytest.fixture
def engine(mock_backend):
    """Idle engine anchored at block 100, node height known"""
    engine = SyncEngine(mock_backend, start_height=100, fetch_interval=0.01, height_poll_interval=0.01)
    engine.ledger.append(block_hash(100))
    return engine


async def wait_for_condition(condition, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("Condition not met in time")
        await asyncio.sleep(0.01)


class TestFetchBlocks:
    @pytest.mark.asyncio
    async def test_fetch_five_blocks_from_start_height(self, engine, mock_backend):
        mock_backend.get_sync_data.return_value = SyncData(
            blocks=make_blocks(101, 105), top_block_height=105
        )
        await engine.update_node_height()

        queued = await engine.fetch_blocks()

        assert queued == 5
        assert engine.fetched_height == 105
        assert engine.get_pending_block_count() == 5
        assert engine.ledger.hashes() == [block_hash(100), block_hash(105)]
        # Nothing scanned yet
        assert engine.get_synced_height() == 100
        mock_backend.get_sync_data.assert_awaited_once_with(
            [block_hash(100)], block_count=100, skip_coinbase_transactions=False
        )

    @pytest.mark.asyncio
    async def test_next_request_is_anchored_at_latest_checkpoint(self, engine, mock_backend):
        mock_backend.get_node_info.return_value = NodeInfo(height=110)
        await engine.update_node_height()

        mock_backend.get_sync_data.return_value = SyncData(blocks=make_blocks(101, 105))
        await engine.fetch_blocks()
        mock_backend.get_sync_data.return_value = SyncData(blocks=make_blocks(106, 110))
        await engine.fetch_blocks()

        assert mock_backend.get_sync_data.await_args_list[1].args[0] == [block_hash(105)]
        assert engine.fetched_height == 110
        assert len(engine.ledger) == 3

    @pytest.mark.asyncio
    async def test_empty_batch_changes_nothing(self, engine, mock_backend):
        await engine.update_node_height()

        assert await engine.fetch_blocks() == 0

        assert engine.fetched_height == 100
        assert engine.get_pending_block_count() == 0
        assert len(engine.ledger) == 1

    @pytest.mark.asyncio
    async def test_unknown_node_height_skips_request(self, engine, mock_backend):
        assert engine.node_height is None
        assert await engine.fetch_blocks() == 0
        mock_backend.get_sync_data.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_caught_up_skips_request(self, engine, mock_backend):
        mock_backend.get_node_info.return_value = NodeInfo(height=100)
        await engine.update_node_height()

        assert await engine.fetch_blocks() == 0
        mock_backend.get_sync_data.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_ledger_raises(self, mock_backend):
        engine = SyncEngine(mock_backend, start_height=100)
        await engine.update_node_height()

        with pytest.raises(EmptyLedger):
            await engine.fetch_blocks()

    @pytest.mark.asyncio
    async def test_resent_anchor_block_is_dropped(self, engine, mock_backend):
        mock_backend.get_sync_data.return_value = SyncData(blocks=make_blocks(100, 103))
        await engine.update_node_height()

        assert await engine.fetch_blocks() == 3
        assert engine.peek_pending().height == 101
        assert engine.fetched_height == 103

    @pytest.mark.asyncio
    async def test_batch_with_gap_is_discarded(self, engine, mock_backend):
        blocks = make_blocks(101, 102) + make_blocks(104, 105)
        mock_backend.get_sync_data.return_value = SyncData(blocks=blocks)
        await engine.update_node_height()

        assert await engine.fetch_blocks() == 0
        assert engine.fetched_height == 100
        assert engine.get_pending_block_count() == 0
        assert len(engine.ledger) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [TransportFailure("timed out"), MalformedResponse("bad")])
    async def test_backend_failure_skips_interval(self, engine, mock_backend, error):
        mock_backend.get_sync_data.side_effect = error
        await engine.update_node_height()

        assert await engine.fetch_blocks() == 0
        assert engine.fetched_height == 100
        assert len(engine.ledger) == 1

    @pytest.mark.asyncio
    async def test_response_after_stop_is_discarded(self, engine, mock_backend):
        async def stop_mid_request(*args, **kwargs):
            engine._stop_event.set()
            return SyncData(blocks=make_blocks(101, 102))

        mock_backend.get_sync_data.side_effect = stop_mid_request
        await engine.update_node_height()

        assert await engine.fetch_blocks() == 0
        assert engine.get_pending_block_count() == 0
        assert engine.fetched_height == 100

    @pytest.mark.asyncio
    async def test_node_height_follows_reported_top_block(self, engine, mock_backend):
        mock_backend.get_sync_data.return_value = SyncData(
            blocks=make_blocks(101, 105), top_block_height=200
        )
        await engine.update_node_height()
        await engine.fetch_blocks()

        assert engine.node_height == 200

    @pytest.mark.asyncio
    async def test_node_height_never_below_fetched_height(self, engine, mock_backend):
        mock_backend.get_node_info.return_value = NodeInfo(height=102)
        mock_backend.get_sync_data.return_value = SyncData(blocks=make_blocks(101, 105))
        await engine.update_node_height()
        await engine.fetch_blocks()

        assert engine.node_height == 105


class TestNodeHeight:
    @pytest.mark.asyncio
    async def test_update_node_height(self, engine):
        assert await engine.update_node_height() == 105
        assert engine.node_height == 105

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_height(self, engine, mock_backend):
        await engine.update_node_height()
        mock_backend.get_node_info.side_effect = TransportFailure("unreachable")

        assert await engine.update_node_height() == 105
        assert engine.node_height == 105

    @pytest.mark.asyncio
    async def test_stale_reply_does_not_lower_height_below_fetched(self, engine, mock_backend):
        mock_backend.get_sync_data.return_value = SyncData(blocks=make_blocks(101, 105))
        await engine.update_node_height()
        await engine.fetch_blocks()

        mock_backend.get_node_info.return_value = NodeInfo(height=102)

        assert await engine.update_node_height() == 105
        assert engine.node_height == 105

    @pytest.mark.asyncio
    async def test_is_synced(self, engine, mock_backend):
        assert engine.is_synced() is False

        mock_backend.get_node_info.return_value = NodeInfo(height=100)
        await engine.update_node_height()
        assert engine.is_synced() is True


class TestCommitBlock:
    @pytest.mark.asyncio
    async def test_commit_head_advances_synced_height(self, engine, mock_backend):
        mock_backend.get_sync_data.return_value = SyncData(blocks=make_blocks(101, 102))
        await engine.update_node_height()
        await engine.fetch_blocks()

        await engine.commit_block(engine.peek_pending())

        assert engine.get_synced_height() == 101
        assert engine.get_pending_block_count() == 1

    @pytest.mark.asyncio
    async def test_commit_rejects_block_not_at_head(self, engine, mock_backend):
        mock_backend.get_sync_data.return_value = SyncData(blocks=make_blocks(101, 102))
        await engine.update_node_height()
        await engine.fetch_blocks()

        with pytest.raises(SyncError):
            await engine.commit_block(Block(height=102, hash=block_hash(102)))
        assert engine.get_synced_height() == 100

    @pytest.mark.asyncio
    async def test_commit_on_empty_queue_raises(self, engine):
        with pytest.raises(SyncError):
            await engine.commit_block(Block(height=101, hash=block_hash(101)))


class TestLifecycle:
    def test_negative_start_height_rejected(self, mock_backend):
        with pytest.raises(ValueError):
            SyncEngine(mock_backend, start_height=-1)

    @pytest.mark.asyncio
    async def test_start_fetches_initial_checkpoint(self, mock_backend):
        engine = SyncEngine(mock_backend, start_height=100, fetch_interval=0.01)
        await engine.start()
        try:
            assert engine.state is SyncState.RUNNING
            assert engine.ledger.latest() == block_hash(100)
            mock_backend.get_block_details_by_height.assert_awaited_once_with(100)
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_start_twice_raises(self, engine):
        await engine.start()
        try:
            with pytest.raises(AlreadyRunning):
                await engine.start()
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_start_failure_leaves_engine_idle(self, mock_backend):
        mock_backend.get_block_details_by_height.side_effect = TransportFailure("down")
        engine = SyncEngine(mock_backend, start_height=100)

        with pytest.raises(TransportFailure):
            await engine.start()

        assert engine.state is SyncState.IDLE
        assert len(engine.ledger) == 0

    @pytest.mark.asyncio
    async def test_stop_when_idle_is_noop(self, engine):
        await engine.stop()
        assert engine.state is SyncState.IDLE

    @pytest.mark.asyncio
    async def test_wait_when_not_running_raises(self, engine):
        with pytest.raises(NotRunning):
            await engine.wait()

    @pytest.mark.asyncio
    async def test_wait_returns_after_stop(self, engine):
        await engine.start()
        waiter = asyncio.create_task(engine.wait())
        await asyncio.sleep(0)

        await engine.stop()

        await asyncio.wait_for(waiter, timeout=1.0)
        assert engine.state is SyncState.STOPPED
        with pytest.raises(NotRunning):
            await engine.wait()

    @pytest.mark.asyncio
    async def test_restart_resumes_from_ledger(self, mock_backend):
        engine = SyncEngine(mock_backend, start_height=100, fetch_interval=0.01)
        await engine.start()
        await engine.stop()
        await engine.start()
        try:
            assert engine.state is SyncState.RUNNING
            mock_backend.get_block_details_by_height.assert_awaited_once()
        finally:
            await engine.stop()

    @pytest.mark.asyncio
    async def test_running_engine_fetches_blocks(self, mock_backend):
        responses = [SyncData(blocks=make_blocks(101, 105), top_block_height=105)]

        async def sync_data(*args, **kwargs):
            return responses.pop(0) if responses else SyncData()

        mock_backend.get_sync_data.side_effect = sync_data
        engine = SyncEngine(
            mock_backend, start_height=100, fetch_interval=0.01, height_poll_interval=0.01
        )

        await engine.start()
        try:
            await wait_for_condition(lambda: engine.fetched_height == 105)
        finally:
            await engine.stop()

        assert engine.get_pending_block_count() == 5
        assert len(engine.ledger) == 2
        assert engine.node_height == 105

    @pytest.mark.asyncio
    async def test_poll_survives_unexpected_errors(self, mock_backend):
        calls = 0

        async def flaky(*args, **kwargs):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("boom")
            return SyncData(blocks=make_blocks(101, 101))

        mock_backend.get_sync_data.side_effect = flaky
        mock_backend.get_node_info.return_value = NodeInfo(height=101)
        engine = SyncEngine(
            mock_backend, start_height=100, fetch_interval=0.01, height_poll_interval=0.01
        )

        await engine.start()
        try:
            await wait_for_condition(lambda: engine.fetched_height == 101)
        finally:
            await engine.stop()

        assert calls >= 2

    @pytest.mark.asyncio
    async def test_close_stops_and_closes_backend(self, engine, mock_backend):
        await engine.start()
        await engine.close()

        assert engine.state is SyncState.STOPPED
        mock_backend.close.assert_awaited_once()
