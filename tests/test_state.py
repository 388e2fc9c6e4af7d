import pytest

from shipyard.model import TargetState
from shipyard.state import StateStore


@pytest.fixture
def store():
    s = StateStore()
    s.begin(["GetBuildNumber", "BuildImage", "Deploy"])
    return s


def test_begin_marks_everything_pending(store):
    assert store.pending() == ["GetBuildNumber", "BuildImage", "Deploy"]
    assert not store.succeeded


def test_happy_path_transitions(store):
    store.mark_running("GetBuildNumber")
    assert store.status("GetBuildNumber") is TargetState.RUNNING

    store.mark_succeeded("GetBuildNumber")
    rec = store.record("GetBuildNumber")
    assert rec.state is TargetState.SUCCEEDED
    assert rec.duration is not None and rec.duration >= 0
    assert store.completed() == ["GetBuildNumber"]


def test_failure_keeps_error(store):
    store.mark_running("BuildImage")
    store.mark_failed("BuildImage", "docker build failed")

    assert store.failed() == ["BuildImage"]
    assert store.record("BuildImage").error == "docker build failed"
    assert store.status("BuildImage").terminal


@pytest.mark.parametrize(
    "steps",
    [
        ["succeeded"],
        ["running", "succeeded", "running"],
        ["running", "failed", "succeeded"],
    ],
)
def test_illegal_transitions(store, steps):
    ops = {
        "running": lambda: store.mark_running("Deploy"),
        "succeeded": lambda: store.mark_succeeded("Deploy"),
        "failed": lambda: store.mark_failed("Deploy", "x"),
    }
    with pytest.raises(ValueError):
        for step in steps:
            ops[step]()


def test_unknown_target_in_store(store):
    with pytest.raises(KeyError):
        store.mark_running("Nope")


def test_summary(store):
    for name in ("GetBuildNumber", "BuildImage", "Deploy"):
        store.mark_running(name)
        store.mark_succeeded(name)

    assert store.summary() == {
        "GetBuildNumber": "succeeded",
        "BuildImage": "succeeded",
        "Deploy": "succeeded",
    }
    assert store.succeeded
