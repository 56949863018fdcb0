"""
Tests for the best-effort side channel.
Run: pytest tests/test_side_channel.py -v
"""
import asyncio
import pytest

from agentgraph.engine.side_channel import BestEffortChannel


class TestBestEffortChannel:

    @pytest.mark.asyncio
    async def test_submit_runs_in_background(self):
        channel = BestEffortChannel()
        done = []

        async def work():
            await asyncio.sleep(0)
            done.append(True)

        assert channel.submit(work, "work") is True
        assert done == []
        await channel.flush()
        assert done == [True]
        assert channel.pending == 0

    @pytest.mark.asyncio
    async def test_failures_are_swallowed_and_counted(self, caplog):
        channel = BestEffortChannel()

        async def broken():
            raise RuntimeError("store offline")

        channel.submit(broken, "history.append")
        await channel.flush()
        assert channel.stats() == {"submitted": 1, "failed": 1, "pending": 0}
        assert "history.append" in caplog.text

    def test_submit_without_loop_reports_false(self):
        channel = BestEffortChannel()

        async def work():
            return None

        assert channel.submit(work, "no-loop") is False
        assert channel.stats()["failed"] == 1
