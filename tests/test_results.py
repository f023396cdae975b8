"""Tests for task result aggregation."""

from __future__ import annotations

from inbox_archiver.core.results import ErrorKind, TaskError, TaskResult


def test_add_error_marks_result_unsuccessful() -> None:
    result = TaskResult()
    assert result.success

    error = result.add_error(ErrorKind.SET_ACL_FAILED, r"C:\archive\a.msg")

    assert not result.success
    assert result.errors == [error]
    assert str(error) == r"SetAclFailed: C:\archive\a.msg"


def test_success_never_recovers_after_an_error() -> None:
    result = TaskResult()
    result.add_error(ErrorKind.SAVE_MESSAGE_FAILED, "first")
    result.fold(TaskResult())
    result.total_items += 1

    assert not result.success


def test_fold_sums_counters_and_concatenates_errors() -> None:
    parent = TaskResult(total_items=1, max_items=3, skipped_items=0)
    parent.add_error(ErrorKind.GET_ITEM_COUNT_FAILED, "Inbox")
    child = TaskResult(total_items=2, max_items=0, skipped_items=1)
    child.add_error(ErrorKind.RESOLVE_GROUP_FAILED, "Sales Team")

    parent.fold(child)

    assert (parent.max_items, parent.total_items, parent.skipped_items) == (3, 3, 1)
    assert [error.kind for error in parent.errors] == [
        ErrorKind.GET_ITEM_COUNT_FAILED,
        ErrorKind.RESOLVE_GROUP_FAILED,
    ]


def test_child_failure_propagates_to_every_ancestor() -> None:
    run = TaskResult()
    folder = TaskResult()
    message = TaskResult()
    message.add_error(ErrorKind.MAP_OBJECT_FAILED, "Ghost User")

    folder.fold(message)
    folder.fold(TaskResult(total_items=1))
    run.fold(folder)

    assert not folder.success
    assert not run.success
    assert run.errors == [TaskError(ErrorKind.MAP_OBJECT_FAILED, "Ghost User")]


def test_finish_stamps_elapsed_time() -> None:
    result = TaskResult()
    assert result.elapsed_seconds is None

    result.finish()

    assert result.finish_time is not None
    assert result.elapsed_seconds is not None and result.elapsed_seconds >= 0
