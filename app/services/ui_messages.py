from __future__ import annotations

from collections import deque
from dataclasses import asdict, dataclass

TOAST_LEVELS = {"success", "info", "warning", "error"}


@dataclass(frozen=True)
class Toast:
    type: str
    message: str


class ToastQueue:
    """Notification sink that buffers toasts until the client collects them."""

    def __init__(self, max_pending: int = 10):
        self._pending: deque[Toast] = deque(maxlen=max_pending)

    def notify(self, message: str, level: str = "success") -> None:
        toast_type = level if level in TOAST_LEVELS else "info"
        self._pending.append(Toast(type=toast_type, message=message))

    def drain(self) -> list[dict]:
        toasts = [asdict(toast) for toast in self._pending]
        self._pending.clear()
        return toasts

    def __len__(self) -> int:
        return len(self._pending)
