from schemaflow.notifications import NotificationCenter
from schemaflow.onto import Severity


class _Clock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_notifications_expire():
    clock = _Clock()
    center = NotificationCenter(clock=clock)
    center.error("boom")
    clock.now = 3.0
    center.success("saved")
    assert [n.message for n in center.active()] == ["boom", "saved"]

    clock.now = 5.0
    assert [n.message for n in center.active()] == ["saved"]

    clock.now = 8.5
    assert center.active() == []


def test_remove_and_last():
    center = NotificationCenter()
    assert center.last is None
    info = center.info("hello")
    warning = center.warning("careful")
    assert center.last == warning
    assert warning.severity == Severity.WARNING
    center.remove(warning.id)
    assert center.active() == [info]
