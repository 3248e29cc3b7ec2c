"""Scripted lookups for development and testing.

Each endpoint host gets its own queue of answers. A step is a bool (the
active flag), an exception instance (raised as the lookup failure), or a
zero-argument callable producing either. The last step repeats once the
queue is exhausted.
"""

import asyncio
import logging
import random
from collections.abc import Callable, Sequence

from fritzwatch.query.base import DeviceQuery, Endpoint

logger = logging.getLogger(__name__)

ScriptStep = bool | BaseException | Callable[[], bool | BaseException]


class ScriptedQuery(DeviceQuery):
    """Answers lookups from a per-host script instead of the network."""

    def __init__(
        self,
        script: dict[str, Sequence[ScriptStep]] | None = None,
        default: ScriptStep = False,
        delay: float = 0.0,
    ) -> None:
        self._script = {host: list(steps) for host, steps in (script or {}).items()}
        self.default = default
        self.delay = delay
        self.calls: list[tuple[str, str]] = []

    def set_script(self, host: str, steps: Sequence[ScriptStep]) -> None:
        self._script[host] = list(steps)

    def _next_step(self, host: str) -> ScriptStep:
        steps = self._script.get(host)
        if not steps:
            return self.default
        if len(steps) > 1:
            return steps.pop(0)
        return steps[0]

    async def fetch_active(self, endpoint: Endpoint, identity: str) -> bool:
        self.calls.append((endpoint.host, identity))
        if self.delay:
            await asyncio.sleep(self.delay)

        step = self._next_step(endpoint.host)
        if callable(step) and not isinstance(step, BaseException):
            step = step()
        if isinstance(step, BaseException):
            raise step
        return bool(step)


def random_presence(probability: float = 0.8) -> Callable[[], bool]:
    """Step factory for the development mock: present most of the time."""

    def _step() -> bool:
        return random.random() < probability

    return _step
