from redis import Redis
from typing import Iterable, List, Optional
from redis.lock import Lock

from seatbook.src import exceptions
from seatbook.src.constants import (
    REDIS_HOST,
    REDIS_PORT,
    REDIS_PASSWORD,
    MUTEX_LOCK_TIMEOUT,
    MUTEX_LOCK_MAX_WAIT_TIME,
)

# Redis client (single connection)
redisClient = Redis(
    host=REDIS_HOST,
    port=REDIS_PORT,
    password=REDIS_PASSWORD,
    decode_responses=True,
)


def lockName(orm_class, pk: Optional[int] = None) -> str:
    tableName = orm_class.__tablename__
    return f"lock:{tableName}" if pk is None else f"lock:{tableName}:{pk}"


def acquireLock(
    orm_class,
    pk: Optional[int] = None,
    timeOut: int = MUTEX_LOCK_TIMEOUT,
    blockingTimeOut: int = MUTEX_LOCK_MAX_WAIT_TIME,
) -> Lock:
    """
    Acquire a Redis-based mutex lock for a table or specific row.

    Args:
        orm_class: ORM model whose table is locked (e.g., Bus).
        pk (Optional[int]): Optional primary key for row-level locking.
        timeOut (int): Lock expiration in seconds (auto-released after this).
        blockingTimeOut (int): Maximum time (in seconds) to wait for lock acquisition.

    Returns:
        Lock: A Redis lock object if successfully acquired.

    Raises:
        exceptions.LockAcquireTimeout: If the lock could not be acquired within blockingTimeOut.
    """
    try:
        lock = redisClient.lock(lockName(orm_class, pk), timeout=timeOut)
        if lock.acquire(blocking=True, blocking_timeout=blockingTimeOut):
            return lock
        raise exceptions.LockAcquireTimeout()
    except Exception as e:
        exceptions.handle(e)


def acquireLocks(orm_class, pks: Iterable[int]) -> List[Lock]:
    """
    Acquire row-level locks for several primary keys.

    Keys are locked in ascending order so two requests touching overlapping
    rows can not wait on each other. On failure every lock taken so far is
    released before the error propagates.
    """
    locks = []
    try:
        for pk in sorted(set(pks)):
            locks.append(acquireLock(orm_class, pk))
        return locks
    except Exception:
        releaseLocks(locks)
        raise


def releaseLock(lock: Optional[Lock]) -> None:
    """
    Release a previously acquired Redis lock.

    Notes:
        - Ensures only the owner can release the lock.
        - Does nothing for None, expired or foreign locks.
    """
    if lock and lock.locked() and lock.owned():
        lock.release()


def releaseLocks(locks: Optional[List[Lock]]) -> None:
    for lock in reversed(locks or []):
        releaseLock(lock)
