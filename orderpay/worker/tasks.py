"""ARQ job definitions."""

from typing import Any

from arq import ArqRedis, create_pool
from arq.connections import RedisSettings

from orderpay.core.config import get_settings
from orderpay.core.logging import configure_logging, get_logger
from orderpay.services.email import EmailDeliveryError

log = get_logger(__name__)

SEND_EMAIL_JOB = "send_notification_email"


async def send_notification_email(ctx: dict[str, Any], record_id: str) -> None:
    """Deliver one queued email record through Resend."""
    mailer = ctx["services"].mailer
    log.info("job_start", job=SEND_EMAIL_JOB, email_id=record_id)
    try:
        record = await mailer.deliver_by_id(record_id)
    except EmailDeliveryError as e:
        log.warning("job_failed", job=SEND_EMAIL_JOB, email_id=record_id, reason=str(e))
        raise
    if record is None:
        log.warning("job_skipped", job=SEND_EMAIL_JOB, email_id=record_id, reason="record not found")
        return
    log.info("job_done", job=SEND_EMAIL_JOB, email_id=record_id, status=record.status)


async def flush_stored_emails(ctx: dict[str, Any]) -> int:
    """Cron job: send emails that were stored while no provider key was set."""
    from orderpay.worker.cron import run_flush_stored_emails
    return await run_flush_stored_emails(ctx["services"].mailer)


async def startup(ctx: dict) -> None:
    from orderpay.services.container import create_services
    settings = get_settings()
    configure_logging(debug=settings.debug)
    # the worker delivers inline; enqueueing from here would loop
    ctx["services"] = await create_services(settings)


async def shutdown(ctx: dict) -> None:
    services = ctx.get("services")
    if services is not None:
        await services.aclose()


def get_redis_settings() -> RedisSettings:
    from urllib.parse import urlparse
    s = get_settings()
    u = urlparse(s.redis_url)
    return RedisSettings(
        host=u.hostname or "localhost",
        port=u.port or 6379,
        password=u.password,
        database=int(u.path.lstrip("/")) if u.path.lstrip("/") else 0,
    )


class ArqEmailQueue:
    """EmailJobQueue backed by an arq pool (API side of EMAIL_DELIVERY=queue)."""

    def __init__(self, pool: ArqRedis):
        self._pool = pool

    @classmethod
    async def connect(cls) -> "ArqEmailQueue":
        return cls(await create_pool(get_redis_settings()))

    async def enqueue(self, record_id: str) -> None:
        await self._pool.enqueue_job(SEND_EMAIL_JOB, record_id)

    async def aclose(self) -> None:
        await self._pool.aclose()
