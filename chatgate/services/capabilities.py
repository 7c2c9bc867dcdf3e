"""
Registry of side-effecting capabilities (send a photo, order food, ...).
The concrete implementations live outside this service and are registered at startup,
the interceptor only looks them up by name and invokes them.
"""
from typing import Any, Awaitable, Callable, Dict, List

CapabilityFn = Callable[[str, str, str, Dict[str, Any]], Awaitable[str]]  # (app_id, user_id, channel, args)


class CapabilityError(Exception):
    pass


class CapabilityRegistry:
    def __init__(self) -> None:
        self._fns: Dict[str, CapabilityFn] = {}

    def register(self, name: str, fn: CapabilityFn) -> None:
        self._fns[name] = fn

    def has(self, name: str) -> bool:
        return name in self._fns

    def names(self) -> List[str]:
        return sorted(self._fns)

    async def invoke(self, name: str, app_id: str, user_id: str, channel: str, args: Dict[str, Any]) -> str:
        fn = self._fns.get(name)
        if fn is None:
            raise CapabilityError(f"Unknown capability: {name}")
        return await fn(app_id, user_id, channel, args)
