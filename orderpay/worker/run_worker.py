"""Run ARQ worker. Usage: python -m orderpay.worker.run_worker"""

from arq import run_worker
from arq.cron import cron
from orderpay.worker.tasks import flush_stored_emails, get_redis_settings, send_notification_email, startup, shutdown


class WorkerSettings:
    functions = [send_notification_email]
    cron_jobs = [
        cron(flush_stored_emails, minute={0, 15, 30, 45}, second=0),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = get_redis_settings()


def main():
    run_worker(WorkerSettings)


if __name__ == "__main__":
    main()
