from dataclasses import asdict

from videojobs.services.poller import build_poller
from videojobs.services.realtime import EventHub
from videojobs.worker.celery_app import celery_app


@celery_app.task(name="poller.run_cycle")
def run_poll_cycle() -> dict:
    """
    One poll cycle on a Celery worker.

    Local subscribers live in the API process, so the hub here has none;
    webhooks and GET /status are the channels in this mode.
    """
    poller = build_poller(EventHub())
    result = poller.run_cycle()
    return {"ok": True, **asdict(result)}
