"""Run ARQ worker. Usage: python -m w2e.worker.run_worker"""

from arq import run_worker
from arq.cron import cron
from w2e.worker.tasks import get_redis_settings, reconcile_ledger, startup, shutdown


class WorkerSettings:
    redis_settings = get_redis_settings()
    functions = [reconcile_ledger]
    cron_jobs = [
        cron(reconcile_ledger, minute=5, second=0, run_at_startup=False),  # hourly at :05
    ]
    on_startup = startup
    on_shutdown = shutdown


def main():
    run_worker(WorkerSettings)


if __name__ == "__main__":
    main()
