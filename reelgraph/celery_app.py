"""Celery application for the remote render backend."""

from celery import Celery

from reelgraph.config import get_settings

settings = get_settings()

celery_app = Celery(
    "reelgraph",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["reelgraph.tasks.render_task"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    enable_utc=True,
    # Renders get their own queue so a worker pool can be sized for ffmpeg
    task_default_queue=settings.render_queue,
    task_routes={"reelgraph.tasks.render_task.render_graph_task": {"queue": settings.render_queue}},
    # STARTED is what the adapter reports as "processing"
    task_track_started=True,
    task_time_limit=settings.render_task_time_limit_s,
    task_soft_time_limit=int(settings.render_task_time_limit_s * 0.9),
    result_expires=settings.render_result_expires_s,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)
