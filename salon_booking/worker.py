"""
Celery worker entry point
Runs deferred calendar sync and bulk resync tasks
"""
import logging
from celery.signals import task_postrun, task_prerun, worker_ready, worker_shutdown

from salon_booking.config.celery_config import celery_app
from salon_booking.utils.my_logging import bind_correlation_id, correlation_id_var, setup_logging

setup_logging()
logger = logging.getLogger(__name__)

_task_tokens = {}


@task_prerun.connect
def bind_task_id(task_id=None, **kwargs):
    _task_tokens[task_id] = bind_correlation_id(task_id)


@task_postrun.connect
def unbind_task_id(task_id=None, **kwargs):
    token = _task_tokens.pop(task_id, None)
    if token is not None:
        correlation_id_var.reset(token)


@worker_ready.connect
def worker_ready_handler(sender=None, **kwargs):
    own_tasks = sorted(name for name in celery_app.tasks.keys() if name.startswith("salon_booking"))
    logger.info(f"Celery worker ready, calendar tasks: {own_tasks}")


@worker_shutdown.connect
def worker_shutdown_handler(sender=None, **kwargs):
    logger.info("Celery worker shutting down")


if __name__ == "__main__":
    celery_app.start([
        'worker',
        '--loglevel=info',
        '--queues=calendar,celery',
        '--concurrency=4',
        '--max-tasks-per-child=1000'
    ])
