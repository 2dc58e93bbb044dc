"""
Live seat status monitoring.

`PollingClient` refreshes the seat status of one trip on a fixed interval
while live mode is on, and publishes each snapshot to its subscribers.

- Switching trip or disabling live mode cancels the pending timer at once.
- A poll already in flight is allowed to finish, but its result is dropped
  if live mode was disabled or the trip switched meanwhile.
- Background errors are logged and the previous snapshot is kept. Only a
  manual `refresh()` raises.
"""

import asyncio
from datetime import datetime, timezone
from logging import getLogger
from typing import Awaitable, Callable, List, Optional
from sqlalchemy.orm.session import Session

from seatbook.src import exceptions
from seatbook.src.constants import POLL_INTERVAL
from seatbook.src.db import sessionMaker
from seatbook.src.reconciliation import (
    STATUS_VERSION,
    ReconciliationEngine,
    summarize,
)

logger = getLogger("Poller")

Snapshot = dict
Fetcher = Callable[[int], Awaitable[Snapshot]]
Subscriber = Callable[[Snapshot], None]


def statusSnapshot(
    session: Session, tripId: int, engine: ReconciliationEngine
) -> Snapshot:
    """
    Compute the status snapshot of a trip:
    `{version, trip_id, statuses, summary, fetched_on}` where `statuses`
    maps seat ids to status names.
    """
    states = engine.seatStates(session, tripId)
    return {
        "version": STATUS_VERSION,
        "trip_id": tripId,
        "statuses": {state.seat.id: state.status.name for state in states},
        "summary": summarize(states).model_dump(),
        "fetched_on": datetime.now(timezone.utc).isoformat(),
    }


def makeStatusFetcher(
    engine: Optional[ReconciliationEngine] = None,
    sessionFactory: Callable[[], Session] = sessionMaker,
) -> Fetcher:
    """Build a coroutine function computing `statusSnapshot` off the event loop."""
    engine = engine or ReconciliationEngine()

    def compute(tripId: int) -> Snapshot:
        session = sessionFactory()
        try:
            return statusSnapshot(session, tripId, engine)
        finally:
            session.close()

    async def fetch(tripId: int) -> Snapshot:
        return await asyncio.to_thread(compute, tripId)

    return fetch


class PollingClient:
    """
    Cooperative timer polling the seat status of the selected trip.

    Must be used from within a running event loop.

    Args:
        fetch (Fetcher): Coroutine function returning the snapshot of a trip.
        interval (float): Seconds between two polls.
    """

    def __init__(self, fetch: Fetcher, interval: float = POLL_INTERVAL):
        self.fetch = fetch
        self.interval = interval
        self.tripId: Optional[int] = None
        self.snapshot: Optional[Snapshot] = None
        self._task: Optional[asyncio.Task] = None
        self._generation = 0
        self._subscribers: List[Subscriber] = []

    @property
    def live(self) -> bool:
        return self._task is not None and not self._task.done()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a snapshot callback; returns a function removing it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def enable(self, tripId: int) -> None:
        """Start live mode for a trip, replacing any previous trip."""
        self.disable()
        if tripId != self.tripId:
            self.snapshot = None
        self.tripId = tripId
        self._task = asyncio.get_running_loop().create_task(
            self._run(self._generation)
        )

    def disable(self) -> None:
        """Stop live mode. Results of polls still in flight are discarded."""
        self._generation += 1
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def refresh(self, silent: bool = False) -> Optional[Snapshot]:
        """
        Poll the selected trip now.

        Raises:
            exceptions.InvalidIdentifier: If no trip is selected.
            Exception: Whatever the fetcher raised, unless `silent` is set.
        """
        if self.tripId is None:
            raise exceptions.InvalidIdentifier()
        return await self._poll(self._generation, self.tripId, silent)

    async def _run(self, generation: int) -> None:
        tripId = self.tripId
        while generation == self._generation:
            await asyncio.shield(self._poll(generation, tripId, silent=True))
            await asyncio.sleep(self.interval)

    async def _poll(
        self, generation: int, tripId: int, silent: bool
    ) -> Optional[Snapshot]:
        try:
            snapshot = await self.fetch(tripId)
        except Exception:
            if not silent:
                raise
            logger.exception("Polling trip %s failed", tripId)
            return None

        if generation != self._generation:
            logger.debug("Discarding stale snapshot of trip %s", tripId)
            return None

        self.snapshot = snapshot
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Snapshot subscriber failed")
        return snapshot
