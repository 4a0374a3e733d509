import os
from celery import Celery
from celery.schedules import crontab

# Set the default Django settings module for the 'celery' program.
os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'backend.settings')

app = Celery('backend')

# Using a string here means the worker doesn't have to serialize
# the configuration object to child processes.
app.config_from_object('django.conf:settings', namespace='CELERY')

# Load task modules from all registered Django apps.
app.autodiscover_tasks()

# Task routing configuration – artifact cleanup runs on its own queue so a
# backlog of deletions never delays anything else.
app.conf.task_routes = {
    'generation.tasks.delete_generated_artifact': {'queue': 'artifact_cleanup'},
    'generation.tasks.purge_expired_artifacts': {'queue': 'maintenance'},

    # Default queue
    '*': {'queue': 'default'},
}

app.conf.task_default_queue = 'default'

app.conf.update(
    # Serialization settings
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',

    # Timezone settings
    timezone='UTC',
    enable_utc=True,

    # Task execution settings
    task_track_started=True,
    task_time_limit=30 * 60,
    task_soft_time_limit=25 * 60,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Countdown tasks must survive a worker restart; the broker visibility
    # timeout in settings keeps them from being redelivered while they wait
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    task_queues={
        'default': {
            'exchange': 'default',
            'routing_key': 'default',
        },
        'artifact_cleanup': {
            'exchange': 'artifact_cleanup',
            'routing_key': 'artifact_cleanup',
        },
        'maintenance': {
            'exchange': 'maintenance',
            'routing_key': 'maintenance',
        },
    },

    task_ignore_result=False,
    task_store_errors_even_if_ignored=True,
)

app.conf.task_annotations = {
    'generation.tasks.delete_generated_artifact': {
        'rate_limit': '120/m',
        'time_limit': 120,
        'soft_time_limit': 90,
    },
    'generation.tasks.purge_expired_artifacts': {
        'rate_limit': '1/m',
        'time_limit': 1800,
        'soft_time_limit': 1500,
    },
}

# Celery Beat schedule configuration
app.conf.beat_schedule = {
    'generation_purge_expired_artifacts_hourly': {
        'task': 'generation.tasks.purge_expired_artifacts',
        'schedule': crontab(minute=5),
        'options': {'queue': 'maintenance'},
    },
}
