from leadsync.services.connectivity import ConnectivityState


def test_reports_only_upward_transitions():
    state = ConnectivityState()

    assert state.set_online(True) is False
    assert state.set_online(False) is False
    assert state.set_online(True) is True
    assert state.set_foreground(False) is False
    assert state.set_foreground(True) is True


def test_listeners_get_snapshots_and_can_unsubscribe():
    state = ConnectivityState()
    seen = []
    unsubscribe = state.subscribe(lambda snap: seen.append((snap.online, snap.foreground)))

    state.set_online(False)
    state.set_foreground(False)
    state.set_foreground(False)
    unsubscribe()
    state.set_online(True)

    assert seen == [(False, True), (False, False)]


def test_failing_listener_does_not_block_others():
    state = ConnectivityState()
    seen = []

    def broken(snapshot):
        raise RuntimeError("listener bug")

    state.subscribe(broken)
    state.subscribe(lambda snap: seen.append(snap.online))
    state.set_online(False)

    assert seen == [False]
