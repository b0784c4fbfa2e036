"""
Register celery-beat schedules for webhook hygiene and escrow sweepers.

    retry_failed_webhooks              every 5 minutes
    cleanup_stuck_webhooks             every 15 minutes
    reverify_stale_pending_payments    every 15 minutes
    resume_stalled_withdrawals         every 10 minutes
"""

from django.db import migrations

PERIODIC_TASKS = [
    {
        "name": "Retry Failed Webhooks",
        "task": "payments.tasks.retry_failed_webhooks",
        "every": 5,
        "description": "Re-queues failed Stripe webhook events that have attempts left.",
    },
    {
        "name": "Reset Stuck Webhooks",
        "task": "payments.tasks.cleanup_stuck_webhooks",
        "every": 15,
        "description": "Marks webhook events stuck in processing as failed so they are retried.",
    },
    {
        "name": "Re-verify Stale Pending Payments",
        "task": "payments.tasks.reverify_stale_pending_payments",
        "every": 15,
        "description": (
            "Runs Verify for pending payments whose buyer never returned, "
            "so expired checkouts end failed and free their listing."
        ),
    },
    {
        "name": "Resume Stalled Withdrawals",
        "task": "payments.tasks.resume_stalled_withdrawals",
        "every": 10,
        "description": (
            "Re-issues transfers for pending withdrawals whose gateway outcome "
            "was unknown, reusing the same idempotency keys."
        ),
    },
]


def create_periodic_tasks(apps, schema_editor):
    """Create the interval schedules and periodic tasks."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for entry in PERIODIC_TASKS:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=entry["every"],
            period="minutes",
        )
        PeriodicTask.objects.get_or_create(
            name=entry["name"],
            defaults={
                "task": entry["task"],
                "interval": schedule,
                "enabled": True,
                "description": entry["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[entry["name"] for entry in PERIODIC_TASKS],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
