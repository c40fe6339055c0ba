"""Cancellable wait used while polling the authority service."""

import threading


class CancellationToken:
    """Cancellation signal shared between a caller and a polling loop.

    ``wait`` replaces a plain ``time.sleep`` so a pending cancel wakes the
    poller immediately instead of after the current interval.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._timer: threading.Timer | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True if cancelled meanwhile."""
        return self._event.wait(seconds)

    def cancel_after(self, seconds: float) -> threading.Timer:
        """Arm a deadline that cancels this token after ``seconds``.

        Re-arming replaces any earlier deadline.
        """
        self.disarm()
        timer = threading.Timer(seconds, self.cancel)
        timer.daemon = True
        timer.start()
        self._timer = timer
        return timer

    def disarm(self) -> None:
        """Stop a pending deadline without cancelling."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
