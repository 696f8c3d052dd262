# agents.py
from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque


@dataclass(frozen=True)
class Agent:
    """An isolated execution context that runs one job at a time."""
    name: str
    index: int


class AgentPool:
    """
    Counting admission over a fixed set of agents.

    acquire() blocks until an agent is idle; idle agents are handed out in
    the order they were released.
    """

    def __init__(self, size: int, prefix: str = "agent") -> None:
        if size < 1:
            raise ValueError(f"agent pool needs at least one agent, got {size}")
        self.size = size
        self._slots = threading.BoundedSemaphore(size)
        self._lock = threading.Lock()
        self._idle: Deque[Agent] = deque(Agent(f"{prefix}-{i + 1}", i) for i in range(size))
        self.busy = 0
        self.peak = 0

    def acquire(self) -> Agent:
        self._slots.acquire()
        with self._lock:
            agent = self._idle.popleft()
            self.busy += 1
            self.peak = max(self.peak, self.busy)
        return agent

    def release(self, agent: Agent) -> None:
        with self._lock:
            self._idle.append(agent)
            self.busy -= 1
        self._slots.release()
