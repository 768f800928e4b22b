import pytest

from videojobs.models.video_job import JobStatus, UnknownStatusError
from videojobs.services.change_detector import ChangeKind, detect_change

Q, P, C, F = JobStatus.QUEUED, JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED


def test_same_status_and_progress_is_unchanged():
    assert detect_change(P, 40, P, 40) is ChangeKind.UNCHANGED
    assert not ChangeKind.UNCHANGED.changed


def test_progress_only_change():
    assert detect_change(P, 40, P, 45) is ChangeKind.PROGRESSED


def test_status_only_change():
    assert detect_change(Q, 0, P, 0) is ChangeKind.PROGRESSED


@pytest.mark.parametrize("old", [Q, P, F])
def test_first_completed_observation_is_terminal_success(old):
    kind = detect_change(old, 90, C, 100)
    assert kind is ChangeKind.TERMINAL_SUCCESS
    assert kind.terminal and kind.changed


@pytest.mark.parametrize("old", [Q, P, C])
def test_first_failed_observation_is_terminal_failure(old):
    assert detect_change(old, 10, F, 10) is ChangeKind.TERMINAL_FAILURE


def test_repeated_terminal_observation_is_not_terminal_again():
    assert detect_change(C, 100, C, 100) is ChangeKind.UNCHANGED
    assert detect_change(F, 0, F, 0) is ChangeKind.UNCHANGED
    # a progress bump on an already-completed job is a plain change, never a second success
    assert detect_change(C, 99, C, 100) is ChangeKind.PROGRESSED


def test_every_status_pair_is_classified():
    for old in JobStatus:
        for new in JobStatus:
            assert isinstance(detect_change(old, 0, new, 0), ChangeKind)


def test_status_parse_accepts_external_spelling():
    assert JobStatus.parse("in_progress") is JobStatus.PROCESSING
    assert JobStatus.parse("COMPLETED") is JobStatus.COMPLETED
    with pytest.raises(UnknownStatusError):
        JobStatus.parse("cancelled")
    with pytest.raises(UnknownStatusError):
        JobStatus.parse(None)
