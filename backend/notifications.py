"""
Student Progress Engine - Live Progress Notifications
Pushes progress snapshots and badge unlocks to connected WebSocket clients

Delivery is best-effort: a badge is durably recorded before it is announced,
so a client that misses the message loses nothing but the celebration.
"""

from enum import Enum
from typing import Dict, Iterable, Set

from logger import get_logger
from models import Badge, Progress

log = get_logger("notifications")


class NotificationType(str, Enum):
    PROGRESS = "progress"               # New snapshot after any committed change
    BADGE_UNLOCKED = "badge_unlocked"   # One message per newly unlocked badge


def progress_message(progress: Progress) -> Dict:
    return {"type": NotificationType.PROGRESS.value, "data": progress.to_json()}


def badge_message(user_id: str, badge: Badge) -> Dict:
    return {
        "type": NotificationType.BADGE_UNLOCKED.value,
        "user_id": user_id,
        "data": badge.to_json()
    }


class ProgressNotifier:
    """Per-user registry of WebSocket-like clients (anything with async send_json)."""

    def __init__(self):
        self._clients: Dict[str, Set] = {}

    def client_count(self, user_id: str = None) -> int:
        if user_id is not None:
            return len(self._clients.get(user_id, ()))
        return sum(len(c) for c in self._clients.values())

    async def register(self, user_id: str, websocket) -> None:
        self._clients.setdefault(user_id, set()).add(websocket)
        log.info(f"[WebSocket] Client connected for user={user_id}. Total: {self.client_count()}")

    async def unregister(self, user_id: str, websocket) -> None:
        clients = self._clients.get(user_id)
        if clients is None:
            return
        clients.discard(websocket)
        if not clients:
            del self._clients[user_id]
        log.info(f"[WebSocket] Client disconnected for user={user_id}. Total: {self.client_count()}")

    async def publish(self, user_id: str, progress: Progress, newly_unlocked: Iterable[Badge] = ()) -> None:
        """Send the snapshot, then one message per unlocked badge."""
        messages = [progress_message(progress)]
        messages.extend(badge_message(user_id, badge) for badge in newly_unlocked)
        await self._broadcast(user_id, messages)

    async def _broadcast(self, user_id: str, messages) -> None:
        clients = self._clients.get(user_id)
        if not clients:
            return

        disconnected = set()
        for client in list(clients):
            try:
                for message in messages:
                    await client.send_json(message)
            except Exception as e:
                log.debug(f"Dropping client for user={user_id}: {e}")
                disconnected.add(client)

        for client in disconnected:
            await self.unregister(user_id, client)


# ============================================
# SINGLETON INSTANCE
# ============================================

progress_notifier = ProgressNotifier()
