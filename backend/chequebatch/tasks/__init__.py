"""
Celery application factory.
"""

from celery import Celery

celery_app = Celery("chequebatch")
celery_app.config_from_object("celeryconfig")

celery_app.autodiscover_tasks(["chequebatch.tasks.batch_tasks"], related_name=None)
