from xpensemate.notifications import ERROR, SUCCESS, Notifier


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_new_notification_replaces_previous():
    notifier = Notifier(duration=3, clock=FakeClock())
    notifier.success("Expense added successfully!")
    notifier.error("Failed to delete expense.")

    assert notifier.current.kind == ERROR
    assert notifier.current.message == "Failed to delete expense."
    assert notifier.shown == 2


def test_notification_auto_dismisses():
    clock = FakeClock()
    notifier = Notifier(duration=3, clock=clock)
    notifier.success("Goal added successfully!")
    assert notifier.current.kind == SUCCESS

    clock.now += 2.9
    assert notifier.current is not None
    clock.now += 0.2
    assert notifier.current is None


def test_dismiss():
    notifier = Notifier(clock=FakeClock())
    notifier.error("Failed to add payment")
    notifier.dismiss()
    assert notifier.current is None
