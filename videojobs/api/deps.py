from fastapi import Request

from videojobs.services.poller import JobPoller, build_poller
from videojobs.services.realtime import EventHub


def get_hub(request: Request) -> EventHub:
    return request.app.state.hub


def get_poller(request: Request) -> JobPoller:
    """
    The running poller when the app started one; otherwise an idle instance
    (never started) used for on-demand polls.
    """
    poller = getattr(request.app.state, "poller", None)
    if poller is None:
        poller = build_poller(get_hub(request))
        request.app.state.poller = poller
    return poller
