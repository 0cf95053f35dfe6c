from reportbot.schedule.lock import ExecutionLock


def test_second_acquire_is_refused_until_release() -> None:
    lock = ExecutionLock()

    assert lock.try_acquire("a")
    assert not lock.try_acquire("a")
    assert lock.is_held("a")

    lock.release("a")
    assert not lock.is_held("a")
    assert lock.try_acquire("a")


def test_ids_are_independent() -> None:
    lock = ExecutionLock()

    assert lock.try_acquire("b")
    assert lock.try_acquire("a")
    assert lock.held() == ["a", "b"]
    assert len(lock) == 2


def test_release_of_unheld_id_is_a_no_op() -> None:
    lock = ExecutionLock()
    lock.release("missing")
    assert len(lock) == 0
