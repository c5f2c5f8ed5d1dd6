"""
Named lock port.

Locks are best-effort: ``acquire`` never raises for a busy lock, it yields a
handle whose ``acquired`` flag tells the caller whether it holds the lock.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncContextManager, Protocol, runtime_checkable


@dataclass
class LockHandle:
    name: str
    acquired: bool


@runtime_checkable
class LockManager(Protocol):
    def acquire(self, name: str) -> AsyncContextManager[LockHandle]: ...


def contribution_lock_name(key: object) -> str:
    """Lock name guarding writes to one contribution (by id or by invoice id)."""
    return f"data.contribute.contribution.{key}"


def recur_lock_name(key: object) -> str:
    """Lock name guarding writes to one recurring contribution (by id or subscription id)."""
    return f"data.contribute.contributionrecur.{key}"
