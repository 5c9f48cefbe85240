"""Per-session table of calls awaiting a reply from the peer."""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any

from mcpbridge.utils.exceptions import CallTimeoutError, DuplicateCallError

DEFAULT_CALL_TIMEOUT = 10.0


@dataclass
class PendingCall:
    call_id: Any
    created_at: float
    timeout: float
    future: asyncio.Future[dict[str, Any]]
    timer: asyncio.TimerHandle | None = None


def _key(call_id: Any) -> str:
    # 1 and "1" are different JSON-RPC ids.
    return json.dumps(call_id, sort_keys=True)


class PendingCallTable:
    """Maps request ids to futures; every entry is completed exactly once.

    An entry leaves the table at the moment it is completed, by a reply, by
    its timeout timer or by ``expire_all``. A reply for an id that is not in
    the table is ignored.
    """

    def __init__(self, default_timeout: float = DEFAULT_CALL_TIMEOUT):
        self.default_timeout = default_timeout
        self._calls: dict[str, PendingCall] = {}

    def __len__(self) -> int:
        return len(self._calls)

    def __contains__(self, call_id: Any) -> bool:
        return _key(call_id) in self._calls

    def ids(self) -> list[Any]:
        return [call.call_id for call in self._calls.values()]

    def register(self, call_id: Any, timeout: float | None = None) -> asyncio.Future[dict[str, Any]]:
        key = _key(call_id)
        if key in self._calls:
            raise DuplicateCallError(call_id)
        budget = self.default_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        future: asyncio.Future[dict[str, Any]] = loop.create_future()
        call = PendingCall(call_id=call_id, created_at=time.monotonic(), timeout=budget, future=future)
        call.timer = loop.call_later(budget, self._expire, key, call)
        future.add_done_callback(lambda _fut: self._forget(key, call))
        self._calls[key] = call
        return future

    def resolve(self, call_id: Any, message: dict[str, Any]) -> bool:
        call = self._take(_key(call_id))
        if call is None:
            return False
        call.future.set_result(message)
        return True

    def claim(self, call_id: Any) -> PendingCall | None:
        """Take the call out of the table with its timer disarmed.

        The caller becomes responsible for completing ``call.future``; neither
        the timeout nor ``expire_all`` will touch it any more.
        """
        return self._take(_key(call_id))

    def expire_all(self, exc: BaseException) -> int:
        calls = list(self._calls.values())
        self._calls.clear()
        count = 0
        for call in calls:
            if call.timer is not None:
                call.timer.cancel()
            if not call.future.done():
                call.future.set_exception(exc)
                count += 1
        return count

    def _take(self, key: str) -> PendingCall | None:
        call = self._calls.pop(key, None)
        if call is None:
            return None
        if call.timer is not None:
            call.timer.cancel()
        if call.future.done():
            return None
        return call

    def _expire(self, key: str, call: PendingCall) -> None:
        if self._calls.get(key) is not call:
            return
        del self._calls[key]
        if not call.future.done():
            call.future.set_exception(CallTimeoutError(call.call_id, call.timeout))

    def _forget(self, key: str, call: PendingCall) -> None:
        # Waiter cancelled by its owner; drop the entry so the id can be reused.
        if self._calls.get(key) is call:
            del self._calls[key]
            if call.timer is not None:
                call.timer.cancel()
