# app/run_payment.py
"""
Make a payment for a table and confirm it.

Completion messages from the provider's return page are relayed to the
session as JSON lines on stdin, e.g.

    {"type": "PAYMENT_STATUS_CHECK", "payload": {"transaction_id": "123"}}
"""
import asyncio, json, os, sys, argparse

from dining.config import make_settings_from_cfg
from dining.enums import PaymentState
from dining.errors import PaymentLinkError
from dining.services.endpoints import make_endpoints_from_cfg
from dining.services.payment_gateway_service import PaymentGatewayService
from dining.services.payment_service import PaymentSessionController
from dining.services.payment_status_service import PaymentStatusService
from dining.stores.session_store import SessionStore
from dining.surfaces import SubprocessSurfaceOpener, WebbrowserRedirector
from infra import HttpContainer
from utils.config import load_cfg
from utils.logger import logger

def env_default(name: str, default=None):
    return os.getenv(name, default)

def build_parser():
    p = argparse.ArgumentParser("dining-payment")
    p.add_argument("--restaurant-id", default=env_default("RESTAURANT_ID", None))
    p.add_argument("--table-id",      default=env_default("TABLE_ID", None))
    p.add_argument("--amount",        type=float, default=None)
    p.add_argument("--link",          default=None, help="skip make-payment and use this link")
    p.add_argument("--config-path",   default=None)
    return p

async def relay_stdin(controller: PaymentSessionController):
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    while True:
        raw = await reader.readline()
        if not raw:
            return
        line = raw.decode("utf-8", errors="replace").strip()
        if not line:
            continue
        try:
            controller.deliver(json.loads(line))
        except ValueError:
            logger.warning(f"ignore non-JSON line: {line[:80]!r}")

async def main():
    args = build_parser().parse_args()
    cfg = load_cfg(args.config_path)

    settings = make_settings_from_cfg(cfg)
    settings.restaurant_id = args.restaurant_id or settings.restaurant_id
    settings.table_id = args.table_id or settings.table_id

    endpoints = make_endpoints_from_cfg(cfg)
    container = await HttpContainer.start(cfg)
    pay = settings.payment
    controller = PaymentSessionController(
        SubprocessSurfaceOpener(pay.surface_command),
        WebbrowserRedirector(),
        PaymentStatusService(container.http, endpoints),
        SessionStore(settings.session()),
        poll_interval_s=pay.poll_interval_s,
        timeout_s=pay.timeout_s,
        viewport=pay.viewport,
        popup_size=(pay.popup_width, pay.popup_height),
    )

    relay = asyncio.create_task(relay_stdin(controller))
    container.add_task(relay)
    try:
        link = args.link
        if not link:
            if not settings.table_id:
                logger.error("table id is required to make a payment")
                return
            try:
                link = await PaymentGatewayService(container.http, endpoints).make_payment(
                    settings.table_id, args.amount)
            except PaymentLinkError as e:
                logger.error(f"make payment failed: {e}")
                return

        await controller.start_session(link)
        state = await controller.wait_until_settled()
        logger.info(f"payment outcome: {state.value}")
        if state is PaymentState.SUCCEEDED:
            controller.handle_success()
    finally:
        await controller.reset_all()
        await container.stop()

if __name__ == "__main__":
    asyncio.run(main())
