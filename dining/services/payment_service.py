# dining/services/payment_service.py
import asyncio
import contextlib
import inspect
import time
from typing import Any, Callable, Optional, Tuple

from pydantic import ValidationError

from dining.enums import PaymentProvider, PaymentState, SurfaceMode, TERMINAL_PAYMENT_STATES
from dining.errors import PopupBlocked, StatusFetchError
from dining.models import PaymentSession, Viewport
from dining.signals import (
    PROVIDER_BY_SIGNAL,
    CloverPayment,
    IposPayment,
    PaymentStatusCheck,
    SquarePayment,
    clover_succeeded,
    decode_signal,
    ipos_succeeded,
)
from dining.stores.session_store import SessionStore
from dining.surfaces import LoggingNotifier, SignalChannel, center_geometry
from utils.logger import logger as _default_logger

NOTICES = {
    PaymentState.SUCCEEDED: ("success", "Payment successful"),
    PaymentState.FAILED: ("warning", "Payment was not completed"),
    PaymentState.FAILED_PROCESSING: ("error", "Payment could not be processed"),
}

class PaymentSessionController:
    """
    One payment confirmation at a time:

        Idle -> Verifying -> {Succeeded, Failed, FailedProcessing}

    start_session() opens the provider page in an external surface (falling
    back once to a full-page redirect), then races surface liveness and a hard
    timeout against the first completion signal on the SignalChannel.

    Failed            no completion signal at all (closed / timed out)
    FailedProcessing  the provider reported a non-success outcome
    """

    def __init__(self,
                 opener,
                 redirector,
                 status_service,
                 session_store: SessionStore,
                 *,
                 channel: Optional[SignalChannel] = None,
                 notifier=None,
                 poll_interval_s: float = 0.5,
                 timeout_s: float = 30.0,
                 viewport: Optional[Viewport] = None,
                 popup_size: Tuple[int, int] = (600, 700),
                 logger=None) -> None:
        self._opener = opener
        self._redirector = redirector
        self._status = status_service
        self._sessions = session_store
        self.channel = channel or SignalChannel()
        self._notifier = notifier or LoggingNotifier()
        self.poll_interval_s = poll_interval_s
        self.timeout_s = timeout_s
        self.viewport = viewport or Viewport()
        self.popup_size = popup_size
        self._log = logger or _default_logger

        self._state = PaymentState.IDLE
        self._in_progress = False
        self._session: Optional[PaymentSession] = None
        self._monitor: Optional[asyncio.Task] = None
        self._last_link: Optional[str] = None

    # ---- state -------------------------------------------------------------

    @property
    def state(self) -> PaymentState:
        return self._state

    @property
    def session(self) -> Optional[PaymentSession]:
        return self._session

    @property
    def in_progress(self) -> bool:
        return self._in_progress

    def deliver(self, message: Any) -> None:
        """Post a completion message coming from the confirmation flow."""
        self.channel.post(message)

    # ---- entry -------------------------------------------------------------

    async def start_session(self, payment_link: str) -> Optional[PaymentSession]:
        # guard: checked and set with no await in between
        if self._in_progress:
            self._log.info("payment session already in progress, reusing it")
            return self._session
        if not payment_link:
            self._log.error("No payment link provided")
            return None
        self._in_progress = True

        self.channel.clear()
        session = PaymentSession(payment_link=payment_link, started_at=time.time())
        self._session = session
        self._last_link = payment_link
        self._state = PaymentState.VERIFYING
        self._log.info("starting payment session")

        width, height = self.popup_size
        geometry = center_geometry(self.viewport, width, height)
        surface = None
        try:
            surface = await self._opener.open(payment_link, geometry)
        except PopupBlocked as e:
            self._log.warning(f"payment surface blocked: {e}")
        except Exception as e:
            self._log.opt(exception=e).error(f"payment surface failed to open: {e!r}")

        if self._session is not session:
            # reset while the surface was opening
            if surface is not None:
                await _close_quietly(surface)
            return session

        if surface is None:
            session.mode = SurfaceMode.REDIRECT
            try:
                await self._redirector.redirect(payment_link)
            except Exception as e:
                self._log.error(f"payment redirect failed: {e}")
                self._finish(session, PaymentState.FAILED, reason="redirect_failed")
                return session
        else:
            session.surface = surface

        self._monitor = asyncio.create_task(self._watch(session))
        return session

    async def wait_until_settled(self) -> PaymentState:
        """Wait for the running session (if any) to reach a terminal state."""
        task = self._monitor
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await asyncio.shield(task)
        return self._state

    # ---- exits -------------------------------------------------------------

    def handle_success(self, on_close: Optional[Callable[[], Any]] = None) -> bool:
        if self._state is not PaymentState.SUCCEEDED:
            self._log.warning(f"handle_success ignored in state {self._state.value}")
            return False
        self._to_idle()
        if on_close is not None:
            on_close()
        return True

    async def retry(self, callback: Optional[Callable[[], Any]] = None) -> Any:
        if self._state not in (PaymentState.FAILED, PaymentState.FAILED_PROCESSING):
            self._log.warning(f"retry ignored in state {self._state.value}")
            return None
        link = self._last_link
        self._to_idle()
        if callback is not None:
            res = callback()
            if inspect.isawaitable(res):
                res = await res
            return res
        return await self.start_session(link)

    def reset(self) -> None:
        """Back to Idle from any state. Leaves the surface alone."""
        self._to_idle()

    async def reset_all(self) -> None:
        """Teardown: close any lingering surface, stop monitoring, back to Idle."""
        session, task = self._session, self._monitor
        self._to_idle()
        if task is not None and not task.done():
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        if session is not None and session.surface is not None:
            await _close_quietly(session.surface)
        self.channel.clear()

    def _to_idle(self) -> None:
        task, self._monitor = self._monitor, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._session = None
        self._in_progress = False
        self._state = PaymentState.IDLE

    # ---- monitoring --------------------------------------------------------

    async def _watch(self, session: PaymentSession) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_s

        signal_task = asyncio.create_task(self._next_signal())
        tasks = {signal_task}
        closed_task = None
        if session.mode is SurfaceMode.POPUP and session.surface is not None:
            closed_task = asyncio.create_task(self._until_closed(session.surface))
            tasks.add(closed_task)

        try:
            done, _ = await asyncio.wait(tasks, timeout=self.timeout_s, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for t in tasks:
                if not t.done():
                    t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        if signal_task in done:
            state = await self._resolve(session, signal_task.result(), deadline - loop.time())
            reason = "signal"
        elif closed_task is not None and closed_task in done:
            state, reason = PaymentState.FAILED, "surface_closed"
        else:
            state, reason = PaymentState.FAILED, "timeout"

        if session.surface is not None:
            await _close_quietly(session.surface)
        self._finish(session, state, reason=reason)

    async def _until_closed(self, surface) -> None:
        while not surface.closed:
            await asyncio.sleep(self.poll_interval_s)

    async def _next_signal(self):
        while True:
            raw = await self.channel.receive()
            try:
                return decode_signal(raw)
            except ValidationError:
                self._log.debug(f"ignore non-payment message on signal channel: {raw!r}")

    async def _resolve(self, session: PaymentSession, signal, remaining_s: float) -> PaymentState:
        session.provider = PROVIDER_BY_SIGNAL[type(signal)]
        session.detail = signal.payload.model_dump()
        self._log.info(f"payment signal received provider={session.provider.value}")

        if isinstance(signal, IposPayment):
            return PaymentState.SUCCEEDED if ipos_succeeded(signal.payload) else PaymentState.FAILED_PROCESSING

        if isinstance(signal, CloverPayment):
            return PaymentState.SUCCEEDED if clover_succeeded(signal.payload) else PaymentState.FAILED_PROCESSING

        if isinstance(signal, SquarePayment):
            return PaymentState.SUCCEEDED

        if isinstance(signal, PaymentStatusCheck):
            txn = str(signal.payload.transaction_id)
            try:
                resp = await asyncio.wait_for(
                    self._status.fetch_status(txn, self._sessions.restaurant_id),
                    timeout=max(remaining_s, 0.0),
                )
            except asyncio.TimeoutError:
                self._log.warning(f"payment status lookup outlived the session txn={txn}")
                return PaymentState.FAILED
            except StatusFetchError as e:
                self._log.warning(f"payment status lookup failed txn={txn}: {e}")
                return PaymentState.FAILED
            session.detail = {**session.detail, "status_response": resp}
            return PaymentState.SUCCEEDED if resp.get("status") else PaymentState.FAILED_PROCESSING

        return PaymentState.FAILED

    def _finish(self, session: PaymentSession, state: PaymentState, *, reason: str) -> None:
        if self._session is not session or state not in TERMINAL_PAYMENT_STATES:
            return
        session.state = state
        session.finished_at = time.time()
        self._state = state
        provider = session.provider.value if isinstance(session.provider, PaymentProvider) else "-"
        self._log.info(f"payment session finished state={state.value} reason={reason} provider={provider}")
        level, text = NOTICES[state]
        if state is PaymentState.FAILED_PROCESSING and session.detail.get("responseMessage"):
            text = f"{text}: {session.detail['responseMessage']}"
        try:
            self._notifier.notify(level, text)
        except Exception as e:
            self._log.opt(exception=e).error(f"notifier failed: {e}")


async def _close_quietly(surface) -> None:
    if getattr(surface, "closed", False):
        return
    with contextlib.suppress(Exception):
        await surface.close()
