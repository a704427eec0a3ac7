"""
Phase-scoped polling.

Every poll loop belongs to the scope that was current when it started. Entering
a new scope cancels the previous scope's token and tasks before anything new is
scheduled, so a callback from an old phase can never apply its result after the
session has moved on.
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from client.api import TransientSyncError
from constants import REQUEST_TIMEOUT
from logging_config import get_logger

logger = get_logger(__name__)


class CancellationToken:
    def __init__(self, scope: Optional[str]):
        self.scope = scope
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        self._cancelled = True


# fn(snapshot, token) -> True to stop polling
PollCallback = Callable[[Any, CancellationToken], Awaitable[Optional[bool]]]


class PollScheduler:
    def __init__(self, snapshot: Callable[[], Any], request_timeout: float = REQUEST_TIMEOUT):
        self._snapshot = snapshot
        self.request_timeout = request_timeout
        self._token = CancellationToken(None)
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def scope(self) -> Optional[str]:
        return self._token.scope

    @property
    def active(self) -> List[str]:
        return sorted(name for name, task in self._tasks.items() if not task.done())

    def enter_scope(self, scope: str) -> CancellationToken:
        self.cancel_all()
        self._token = CancellationToken(scope)
        logger.debug(f"Entered poll scope {scope}")
        return self._token

    def every(self, name: str, interval: float, fn: PollCallback) -> asyncio.Task:
        """Run ``fn`` now and then every ``interval`` seconds until it returns True or the scope ends."""
        token = self._token
        task = asyncio.get_running_loop().create_task(
            self._run(name, interval, fn, token), name=f"poll:{token.scope}:{name}")
        self._tasks[name] = task
        task.add_done_callback(lambda t: self._finished(name, t))
        return task

    async def _run(self, name: str, interval: float, fn: PollCallback, token: CancellationToken):
        logger.debug(f"Poll {name} started in scope {token.scope}")
        while not token.cancelled:
            done = False
            try:
                done = await asyncio.wait_for(fn(self._snapshot(), token), timeout=self.request_timeout)
            except TransientSyncError as e:
                logger.debug(f"Poll {name} failed, retrying next tick: {e}")
            except asyncio.TimeoutError:
                logger.debug(f"Poll {name} timed out after {self.request_timeout}s, retrying next tick")
            if done or token.cancelled:
                break
            await asyncio.sleep(interval)
        logger.debug(f"Poll {name} stopped in scope {token.scope}")

    def _finished(self, name: str, task: asyncio.Task):
        if self._tasks.get(name) is task:
            del self._tasks[name]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Poll {name} crashed: {exc}", exc_info=exc)

    def cancel_all(self):
        self._token.cancel()
        for task in self._tasks.values():
            task.cancel()
        self._tasks.clear()

    async def drain(self):
        """Cancel the current scope's polls and wait until they have really stopped."""
        tasks = [t for t in self._tasks.values() if t is not asyncio.current_task()]
        self.cancel_all()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
