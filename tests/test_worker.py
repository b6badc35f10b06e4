from datetime import date, timedelta

from app import worker

from .conftest import TestingSessionLocal
from .factories import make_vehicle


def test_cron_schedule():
    jobs = {job.name: (job.hour, job.minute) for job in worker.WorkerSettings.cron_jobs}
    assert jobs == {
        "cron:subscription_status_check_task": (0, 0),
        "cron:visibility_consistency_task": (1, 0),
        "cron:mot_reminders_task": (9, 0),
    }


async def test_mot_reminder_task_uses_its_own_session(db, driver, monkeypatch, sent_emails):
    make_vehicle(db, driver, mot_expiry_date=date.today() + timedelta(days=7))
    monkeypatch.setattr(worker, "SessionLocal", TestingSessionLocal)

    summary = await worker.mot_reminders_task({})

    assert summary["sent"] == 1
    assert sent_emails[0]["to"] == driver.email


async def test_visibility_task_repairs_flags(db, garage, monkeypatch):
    monkeypatch.setattr(worker, "SessionLocal", TestingSessionLocal)

    summary = await worker.visibility_consistency_task({})

    assert summary == {"checked": 1, "inconsistent": 1, "fixed": 1}
    db.refresh(garage)
    assert garage.has_subscription is False
