#
# Copyright 2025 The FlairBridge contributors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

"""Repeating poll timers with jitter.

Every registration runs its task once right away, then repeatedly after
``interval + randint(1, jitter)`` seconds, drawing a new jitter before each
sleep so accessories polling the same cloud drift apart instead of firing
together. ``schedule`` returns a handle that stops the timer; evicting an
accessory must cancel its handle.
"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, List, Optional

logger = logging.getLogger(__name__)

PollTask = Callable[[], Awaitable[object]]


class ScheduledPoll:
    """Cancellation handle for one scheduled task."""

    def __init__(self, scheduler: 'PollingScheduler', name: str, interval: float, jitter: int):
        self.scheduler = scheduler
        self.name = name
        self.interval = interval
        self.jitter = jitter
        self.runs = 0
        self.task: Optional[asyncio.Task] = None

    @property
    def cancelled(self) -> bool:
        return self.task is None or self.task.cancelled() or self.task.done()

    def cancel(self):
        """Stop the timer. Safe to call more than once."""
        if self.task and not self.task.done():
            self.task.cancel()
            logger.debug(f"Cancelled poll timer {self.name}")
        self.scheduler._forget(self)

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "active"
        return f"<ScheduledPoll {self.name}: every {self.interval}s+1..{self.jitter}s, {state}>"


class PollingScheduler:
    """Owns the per-accessory poll timers."""

    def __init__(self, rng: Optional[random.Random] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self._rng = rng or random.Random()
        self._sleep = sleep
        self.polls: List[ScheduledPoll] = []

    def next_delay(self, interval: float, jitter: int) -> float:
        """Seconds until the next firing, within [interval + 1, interval + jitter]."""
        return interval + self._rng.randint(1, max(1, jitter))

    def schedule(self, interval: float, jitter: int, task: PollTask, name: str = "poll") -> ScheduledPoll:
        """Start polling ``task``; must be called from a running event loop."""
        handle = ScheduledPoll(self, name, interval, jitter)
        handle.task = asyncio.create_task(self._run(handle, task), name=f"poll-{name}")
        self.polls.append(handle)
        logger.debug(f"Scheduled {handle!r}")
        return handle

    async def _run(self, handle: ScheduledPoll, task: PollTask):
        await self._invoke(handle, task)
        while True:
            await self._sleep(self.next_delay(handle.interval, handle.jitter))
            await self._invoke(handle, task)

    async def _invoke(self, handle: ScheduledPoll, task: PollTask):
        # A failing task must not end the timer.
        try:
            await task()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Poll {handle.name} failed: {e}")
        finally:
            handle.runs += 1

    def _forget(self, handle: ScheduledPoll):
        if handle in self.polls:
            self.polls.remove(handle)

    async def cancel_all(self):
        """Cancel every timer and wait for them to finish."""
        polls = list(self.polls)
        if not polls:
            return
        logger.info(f"Cancelling {len(polls)} poll timers")
        tasks = [p.task for p in polls if p.task]
        for poll in polls:
            poll.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
