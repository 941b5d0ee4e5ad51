from typing import Optional


class CancellationToken:
    """
    Cooperative stop request shared by the capture loop and the viewer.

    The viewer's mouse/key callbacks run inside cv2.waitKey on the capture
    thread, so no locking is involved.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        # first reason wins
        if not self._cancelled:
            self._cancelled = True
            self.reason = reason

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled}, reason={self.reason!r})"
