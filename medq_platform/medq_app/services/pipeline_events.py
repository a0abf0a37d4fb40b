"""In-memory broker for file/section progress events (SSE fan-out)."""

from __future__ import annotations

import json
import queue
from typing import Dict, Iterable


class PipelineEventBroker:
    def __init__(self, max_queue: int = 1000) -> None:
        self.listeners: set[queue.Queue] = set()
        self.max_queue = max_queue

    def publish(self, payload: Dict) -> None:
        message = json.dumps(payload, default=str)
        for listener in list(self.listeners):
            try:
                listener.put_nowait(message)
            except queue.Full:
                continue

    def listen(self, owner_id: str | None = None) -> Iterable[str]:
        """Yield published messages; an owner-scoped listener only sees that owner's events."""
        q: queue.Queue[str] = queue.Queue(maxsize=self.max_queue)
        self.listeners.add(q)
        try:
            while True:
                data = q.get()
                # Owner-less events (AI call telemetry) are operator-only.
                if owner_id is not None and json.loads(data).get("ownerId") != owner_id:
                    continue
                yield data
        finally:
            self.listeners.discard(q)


pipeline_event_broker = PipelineEventBroker()


def publish_file(study_file) -> None:
    pipeline_event_broker.publish(
        {"type": "file", "ownerId": study_file.owner_id, "payload": study_file.serialize()}
    )


def publish_section(section) -> None:
    pipeline_event_broker.publish(
        {"type": "section", "ownerId": section.owner_id, "payload": section.serialize()}
    )
