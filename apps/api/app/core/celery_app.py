from celery import Celery

from app.core.config import get_settings

settings = get_settings()

celery_app = Celery("educrm_api", broker=settings.redis_url, backend=settings.redis_url, include=["app.tasks"])

DISPATCH_NOTIFICATION_TASK = "app.tasks.dispatch_notification"
