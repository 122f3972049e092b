"""
Celery configuration for the cheque batch workers.

Loaded by ``celery_app.config_from_object("celeryconfig")`` in
chequebatch/tasks/__init__.py.  Broker and result backend come from the
same settings object as the rest of the application.
"""

from chequebatch.core.config import settings

# ═══════════════════════════════════════════════════════════
#  Broker & Result Backend
# ═══════════════════════════════════════════════════════════

broker_url = settings.CELERY_BROKER_URL
result_backend = settings.CELERY_RESULT_BACKEND

# ═══════════════════════════════════════════════════════════
#  Serialization: JSON only
# ═══════════════════════════════════════════════════════════

task_serializer = "json"
result_serializer = "json"
accept_content = ["json"]

timezone = "UTC"
enable_utc = True

# ═══════════════════════════════════════════════════════════
#  Task Execution
# ═══════════════════════════════════════════════════════════

task_acks_late = True
task_reject_on_worker_lost = True

# A batch task holds its worker for the whole batch
worker_prefetch_multiplier = 1

# Sequential batches are paced at items_per_second; allow large batches
task_soft_time_limit = 3600
task_time_limit = 3660

# Batch tasks are not retried by Celery: items already retry internally
# and a re-run would register the batch twice.
task_max_retries = 0

result_expires = 86400

worker_max_tasks_per_child = 100
worker_send_task_events = False
task_send_sent_event = False

# ═══════════════════════════════════════════════════════════
#  Task Routes
# ═══════════════════════════════════════════════════════════
#   celery -A chequebatch.tasks worker -Q batches
#   celery -A chequebatch.tasks worker -Q default

task_routes = {
    "chequebatch.tasks.batch_tasks.process_batch": {"queue": "batches"},
    "chequebatch.tasks.batch_tasks.cancel_batch": {"queue": "default"},
}

task_default_queue = "default"
