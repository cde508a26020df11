# dining/surfaces.py
"""
External confirmation surface used by payment sessions.

A surface is whatever shows the provider's hosted payment page: here a
separate browser process whose exit means "closed". Completion messages from
the provider's return page reach the session through a SignalChannel.
"""
import asyncio
import contextlib
import webbrowser
from typing import Any, List, Optional, Protocol, Sequence

from dining.errors import PopupBlocked
from dining.models import SurfaceGeometry, Viewport
from utils.logger import logger as _default_logger


class ConfirmationSurface(Protocol):
    @property
    def closed(self) -> bool: ...
    async def close(self) -> None: ...


class SurfaceOpener(Protocol):
    async def open(self, url: str, geometry: SurfaceGeometry) -> Optional[ConfirmationSurface]:
        """Return the surface, or None / raise PopupBlocked when it cannot be shown."""
        ...


class Redirector(Protocol):
    async def redirect(self, url: str) -> None: ...


class Notifier(Protocol):
    def notify(self, level: str, message: str) -> None: ...


def center_geometry(viewport: Viewport, width: int = 600, height: int = 700) -> SurfaceGeometry:
    """Center a width x height surface on the caller's viewport, compensating for zoom."""
    avail = viewport.avail_width or viewport.width
    zoom = (viewport.width / avail) if avail else 1.0
    zoom = zoom or 1.0
    left = (viewport.width - width) / 2 / zoom + viewport.left
    top = (viewport.height - height) / 2 / zoom + viewport.top
    return SurfaceGeometry(width=width, height=height, left=int(left), top=int(top))


# ---- subprocess-backed surface ------------------------------------------------

class SubprocessSurface:
    def __init__(self, proc: asyncio.subprocess.Process) -> None:
        self._proc = proc

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def closed(self) -> bool:
        return self._proc.returncode is not None

    async def close(self) -> None:
        if self.closed:
            return
        with contextlib.suppress(ProcessLookupError):
            self._proc.terminate()
        try:
            await asyncio.wait_for(self._proc.wait(), timeout=3)
        except asyncio.TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                self._proc.kill()
            await self._proc.wait()


class SubprocessSurfaceOpener:
    """
    Launches `command` (argv template) for the payment link.
    Placeholders: {url} {width} {height} {left} {top}.
    """

    def __init__(self, command: Sequence[str], logger=None) -> None:
        self._command = list(command)
        self._log = logger or _default_logger

    def argv(self, url: str, geometry: SurfaceGeometry) -> List[str]:
        values = {"url": url, "width": geometry.width, "height": geometry.height,
                  "left": geometry.left, "top": geometry.top}
        return [part.format(**values) for part in self._command]

    async def open(self, url: str, geometry: SurfaceGeometry) -> Optional[ConfirmationSurface]:
        argv = self.argv(url, geometry)
        if not argv:
            raise PopupBlocked("no surface command configured")
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise PopupBlocked(f"cannot launch {argv[0]}: {e}") from e
        self._log.info(f"payment surface opened pid={proc.pid} {geometry.width}x{geometry.height}"
                       f"+{geometry.left}+{geometry.top}")
        return SubprocessSurface(proc)


class WebbrowserRedirector:
    """Full-page fallback: hand the link to the default browser in the current window."""

    async def redirect(self, url: str) -> None:
        opened = await asyncio.to_thread(webbrowser.open, url, 0)
        if not opened:
            _default_logger.warning("no browser available for payment redirect")


class LoggingNotifier:
    """Toast sink that only logs; UIs plug in their own."""

    def __init__(self, logger=None) -> None:
        self._log = logger or _default_logger

    def notify(self, level: str, message: str) -> None:
        self._log.log(level.upper(), f"[notice] {message}")


# ---- completion signal channel -----------------------------------------------

class SignalChannel:
    """
    Message channel between the confirmation flow and the payment session.
    The return page (or a webhook relay) posts provider messages; the session
    receives them in order.
    """

    def __init__(self) -> None:
        self._q: asyncio.Queue = asyncio.Queue()

    def post(self, message: Any) -> None:
        self._q.put_nowait(message)

    async def receive(self) -> Any:
        return await self._q.get()

    def clear(self) -> int:
        n = 0
        while True:
            try:
                self._q.get_nowait()
            except asyncio.QueueEmpty:
                return n
            n += 1

    def __len__(self) -> int:
        return self._q.qsize()
