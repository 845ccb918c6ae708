"""Per-conversation admission gate: single flight and at-most-once processing."""

from __future__ import annotations

import logging

from .config import settings
from .state import OrchestratorState, ProcessingLock

logger = logging.getLogger(__name__)


class MessageGate:
    def __init__(
        self,
        state: OrchestratorState,
        *,
        lock_timeout: float | None = None,
        history_size: int | None = None,
    ) -> None:
        self._state = state
        self.lock_timeout = (
            settings.processing_timeout_seconds if lock_timeout is None else lock_timeout
        )
        self.history_size = (
            settings.processed_history_size if history_size is None else history_size
        )

    def admit(self, conversation_id: str, message_id: str) -> bool:
        """Claim ``message_id`` for processing; False means skip it silently."""
        processed = self._state.processed.setdefault(conversation_id, {})
        if message_id in processed:
            logger.debug("Message %s already processed in %s", message_id, conversation_id)
            return False

        lock = self._state.locks.get(conversation_id)
        if lock is not None and lock.message_id != message_id:
            logger.debug(
                "Conversation %s busy with %s, skipping %s",
                conversation_id,
                lock.message_id,
                message_id,
            )
            return False

        processed[message_id] = None
        self._state.locks[conversation_id] = ProcessingLock(
            conversation_id=conversation_id,
            message_id=message_id,
            acquired_at=self._state.now(),
        )
        return True

    def release(self, conversation_id: str, message_id: str | None = None) -> None:
        """Drop the conversation's lock if ``message_id`` still owns it.

        After a forced sweep the lock may belong to a newer message; a late
        release from the swept message leaves it alone.
        """
        lock = self._state.locks.get(conversation_id)
        if lock is None:
            return
        if message_id is not None and lock.message_id != message_id:
            logger.debug(
                "Lock on %s now held by %s, ignoring release for %s",
                conversation_id,
                lock.message_id,
                message_id,
            )
            return
        del self._state.locks[conversation_id]

    def is_locked(self, conversation_id: str) -> bool:
        return conversation_id in self._state.locks

    def sweep(self) -> int:
        """Drop stale locks and trim processed-id history. Returns locks released."""
        now = self._state.now()
        stale = [
            conversation_id
            for conversation_id, lock in self._state.locks.items()
            if now - lock.acquired_at > self.lock_timeout
        ]
        for conversation_id in stale:
            lock = self._state.locks.pop(conversation_id)
            logger.warning(
                "Force-releasing lock on %s held by %s for %.0fs",
                conversation_id,
                lock.message_id,
                now - lock.acquired_at,
            )

        for conversation_id, processed in self._state.processed.items():
            overflow = len(processed) - self.history_size
            if overflow > 0:
                for message_id in list(processed)[:overflow]:
                    del processed[message_id]
        return len(stale)

    def reset(self) -> None:
        self._state.locks.clear()
        self._state.processed.clear()
