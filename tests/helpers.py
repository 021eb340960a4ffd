import asyncio
from typing import List, Optional, Union

from paycore.models import PaymentStatusRecord


class ScriptedStatusSource:
    """Status source that answers each poll with the next scripted entry.

    Entries may be a status string, a PaymentStatusRecord, None (payment not
    found) or an exception instance to raise. The last entry repeats.
    """

    def __init__(self, script: List[Union[str, PaymentStatusRecord, Exception, None]], gate: Optional[asyncio.Event] = None):
        self.script = list(script)
        self.gate = gate
        self.calls = 0

    async def fetch_status(self, reference: str) -> Optional[PaymentStatusRecord]:
        index = min(self.calls, len(self.script) - 1)
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)

        entry = self.script[index]
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, str):
            return PaymentStatusRecord(status=entry, amount=100, currency="ZMW", reference=reference)
        return entry


async def wait_until(condition, timeout: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


