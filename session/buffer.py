"""Shared round buffer for timesync-testkit.

RoundBuffer holds the completed RoundRecords of a session, in arrival
order, together with the table of PINGs still waiting for a PONG. The
driver thread tracks PINGs, the listener thread matches PONGs and appends
records, and the aggregator reads a snapshot once both have stopped. All
access goes through one lock.
"""

import logging
import threading

from session.record import RoundRecord

logger = logging.getLogger(__name__)


class RoundBuffer:
    """Append-only record buffer plus pending-request table."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._settled = threading.Condition(self._lock)
        self._records: list[RoundRecord] = []
        self._pending: dict[int, int] = {}  # sequence_number -> outgoing_stamp
        self._lost = 0
        self._rejected = 0

    def track(self, sequence_number: int, outgoing_stamp: int) -> None:
        """Register a PING as in flight."""
        with self._lock:
            self._pending[sequence_number] = outgoing_stamp

    def untrack(self, sequence_number: int) -> None:
        """Forget a PING that never made it onto the wire."""
        with self._lock:
            self._pending.pop(sequence_number, None)
            if not self._pending:
                self._settled.notify_all()

    def match(self, sequence_number: int, outgoing_stamp: int) -> bool:
        """Claim the pending PING a PONG answers.

        Returns False if no PING with this sequence number is pending, or
        the echoed outgoing_stamp differs from the one sent.
        """
        with self._lock:
            tracked = self._pending.get(sequence_number)
            if tracked is None or tracked != outgoing_stamp:
                return False
            del self._pending[sequence_number]
            if not self._pending:
                self._settled.notify_all()
            return True

    def append(self, record: RoundRecord) -> None:
        with self._lock:
            self._records.append(record)

    def reject(self) -> None:
        """Count a PONG that was not recorded."""
        with self._lock:
            self._rejected += 1

    def expire(self, now_ns: int, timeout_ns: int) -> list[int]:
        """Evict PINGs sent more than timeout_ns before now_ns.

        Returns the evicted sequence numbers.
        """
        with self._lock:
            expired = [
                seq for seq, sent in self._pending.items() if now_ns - sent > timeout_ns
            ]
            for seq in expired:
                del self._pending[seq]
            self._lost += len(expired)
            if expired and not self._pending:
                self._settled.notify_all()
        if expired:
            logger.warning(f"No reply within timeout for rounds {expired}")
        return expired

    def expire_all(self) -> list[int]:
        """Evict every pending PING (session teardown)."""
        with self._lock:
            expired = sorted(self._pending)
            self._pending.clear()
            self._lost += len(expired)
            self._settled.notify_all()
        if expired:
            logger.warning(f"Session ended without replies for rounds {expired}")
        return expired

    def wait_settled(self, timeout_s: float) -> bool:
        """Block until no PING is pending. Returns False on timeout."""
        with self._settled:
            return self._settled.wait_for(lambda: not self._pending, timeout=timeout_s)

    def records(self) -> list[RoundRecord]:
        """Snapshot of the records in arrival order."""
        with self._lock:
            return list(self._records)

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def lost(self) -> int:
        with self._lock:
            return self._lost

    @property
    def rejected(self) -> int:
        with self._lock:
            return self._rejected

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
