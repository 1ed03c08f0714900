"""
Completion scheduler for timeout votes.

Two mechanisms close votes, and both end in
:meth:`VoteLifecycle.complete_vote`, whose atomic claim makes a double
trigger harmless:

- **One-shot jobs**: a min-heap of ``(run_at, job_id, vote_id)`` entries
  served by a single background task. A job is pushed when a vote starts
  and fires once its duration has elapsed. Jobs live in memory only.
- **Reconciliation sweep**: :meth:`CompletionScheduler.sweep` lists every
  active vote in the store, completes the ones that are due and re-renders
  the rest so their "time remaining" stays current. It is driven
  periodically by ``VoteSweepCog`` and covers votes whose one-shot job was
  lost to a restart.
"""

from __future__ import annotations

import asyncio
import heapq
from typing import Dict

from tribunal.util.logger import get_logger
from tribunal.voting.vote_lifecycle import VoteLifecycle

logger = get_logger("completion_scheduler")


class CompletionScheduler:
    """
    Fires ``complete_vote`` for each vote once its duration has elapsed.

    Attributes:
        heap (list): Min-heap of (run_at, job_id, vote_id) tuples.
        pending_keys (Dict): Maps vote_id to its live job_id.
        cancelled_ids (set): Job IDs that must be skipped when popped.
        counter (int): Monotonically increasing job ID counter.
        runner_task (asyncio.Task | None): Background task processing the heap.
        condition (asyncio.Condition): Wakes the runner when the heap changes.
    """

    def __init__(self, lifecycle: VoteLifecycle) -> None:
        self.lifecycle = lifecycle
        self.heap: list[tuple[float, int, str]] = []
        self.pending_keys: Dict[str, int] = {}
        self.cancelled_ids: set[int] = set()
        self.counter: int = 0
        self.runner_task: asyncio.Task[None] | None = None
        self.condition: asyncio.Condition = asyncio.Condition()

    def ensure_runner(self) -> None:
        """Create the background runner task if it's not already active."""
        loop = asyncio.get_running_loop()
        if self.runner_task is None or self.runner_task.done():
            self.runner_task = loop.create_task(self.run(), name="tribunal-completion-scheduler")

    async def schedule(self, vote_id: str, delay_seconds: float) -> None:
        """
        Schedule completion of ``vote_id`` after ``delay_seconds``.

        A non-positive delay completes the vote right away. Scheduling a vote
        that already has a pending job replaces that job.
        """
        if delay_seconds <= 0:
            await self.execute(vote_id)
            return

        loop = asyncio.get_running_loop()
        run_at = loop.time() + delay_seconds

        async with self.condition:
            self.ensure_runner()
            if vote_id in self.pending_keys:
                self.cancelled_ids.add(self.pending_keys[vote_id])

            self.counter += 1
            job_id = self.counter
            heapq.heappush(self.heap, (run_at, job_id, vote_id))
            self.pending_keys[vote_id] = job_id
            self.condition.notify_all()

        logger.debug("[COMPLETION SCHEDULER] Vote %s scheduled in %.1fs", vote_id, delay_seconds)

    async def cancel(self, vote_id: str) -> bool:
        """
        Drop the pending job for ``vote_id``.

        Returns:
            bool: True if a job was pending, False otherwise.
        """
        async with self.condition:
            job_id = self.pending_keys.pop(vote_id, None)
            if job_id is None:
                return False

            self.cancelled_ids.add(job_id)
            self.condition.notify_all()
            return True

    async def shutdown(self) -> None:
        """Stop the runner and forget every pending job. Safe to call multiple times."""
        async with self.condition:
            if self.runner_task:
                self.runner_task.cancel()
            self.heap.clear()
            self.pending_keys.clear()
            self.cancelled_ids.clear()
            self.condition.notify_all()

        if self.runner_task:
            try:
                await self.runner_task
            except asyncio.CancelledError:
                pass
            finally:
                self.runner_task = None

    async def run(self) -> None:
        """Background loop popping due jobs off the heap until shutdown."""
        loop = asyncio.get_running_loop()
        while True:
            async with self.condition:
                # Skip over cancelled jobs at the top of the heap
                while self.heap and self.heap[0][1] in self.cancelled_ids:
                    _, job_id, _ = heapq.heappop(self.heap)
                    self.cancelled_ids.discard(job_id)

                if not self.heap:
                    await self.condition.wait()
                    continue

                run_at, _, _ = self.heap[0]
                delay = run_at - loop.time()

                if delay > 0:
                    try:
                        await asyncio.wait_for(self.condition.wait(), timeout=delay)
                    except asyncio.TimeoutError:
                        pass
                    continue

                _, job_id, vote_id = heapq.heappop(self.heap)
                if self.pending_keys.get(vote_id) == job_id:
                    del self.pending_keys[vote_id]

            await self.execute(vote_id)

    async def execute(self, vote_id: str) -> None:
        """Complete one vote, logging instead of raising so the runner survives."""
        try:
            await self.lifecycle.complete_vote(vote_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("[COMPLETION SCHEDULER] Failed to complete vote %s: %s", vote_id, exc)

    async def sweep(self, now: float | None = None) -> int:
        """
        Reconcile every active vote against its deadline.

        Due votes are completed; the others get their tally message
        re-rendered. A failure on one vote is logged and the sweep moves on;
        a failure listing the votes ends this pass, and the next tick retries.

        Returns:
            int: Number of votes this pass completed.
        """
        now = self.lifecycle.clock() if now is None else now
        duration = self.lifecycle.settings.vote_duration_seconds

        try:
            votes = await self.lifecycle.list_active_votes()
        except Exception as exc:
            logger.error("[VOTE SWEEP] Could not list active votes: %s", exc)
            return 0

        completed = 0
        for vote in votes:
            try:
                if vote.is_due(duration, now):
                    if await self.lifecycle.complete_vote(vote.vote_id) is not None:
                        completed += 1
                else:
                    await self.lifecycle.refresh_message(vote.vote_id)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("[VOTE SWEEP] Failed to reconcile vote %s: %s", vote.vote_id, exc)

        if completed:
            logger.info("[VOTE SWEEP] Completed %d overdue vote(s)", completed)
        return completed
