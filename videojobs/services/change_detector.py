from __future__ import annotations

import enum

from videojobs.models.video_job import JobStatus


class ChangeKind(str, enum.Enum):
    UNCHANGED = "unchanged"
    PROGRESSED = "progressed"
    TERMINAL_SUCCESS = "terminal-success"
    TERMINAL_FAILURE = "terminal-failure"

    @property
    def changed(self) -> bool:
        return self is not ChangeKind.UNCHANGED

    @property
    def terminal(self) -> bool:
        return self in (ChangeKind.TERMINAL_SUCCESS, ChangeKind.TERMINAL_FAILURE)


def detect_change(old_status: JobStatus, old_progress: int, new_status: JobStatus, new_progress: int) -> ChangeKind:
    """
    Classify a freshly fetched (status, progress) against the recorded one.

    Terminal kinds fire on the transition into the terminal status only, so
    re-observing a completed/failed job never triggers terminal handling twice.
    """
    if new_status == JobStatus.COMPLETED and old_status != JobStatus.COMPLETED:
        return ChangeKind.TERMINAL_SUCCESS
    if new_status == JobStatus.FAILED and old_status != JobStatus.FAILED:
        return ChangeKind.TERMINAL_FAILURE
    if new_status != old_status or new_progress != old_progress:
        return ChangeKind.PROGRESSED
    return ChangeKind.UNCHANGED
