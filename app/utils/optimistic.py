"""
Optimistic update helper: apply a local change, then confirm it remotely.
"""
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


async def optimistic_update(
    apply: Callable[[], None],
    revert: Callable[[], None],
    remote: Callable[[], Awaitable[T]],
) -> T:
    """
    Run apply() immediately, then await remote().
    If remote() raises, revert() restores the previous local state and the
    error is re-raised for the caller to report.
    """
    apply()
    try:
        return await remote()
    except Exception:
        revert()
        raise
