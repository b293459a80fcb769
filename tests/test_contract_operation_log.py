import unittest

from tourdispatch.changes import AssignChange, BatchResult, ReassignChange, TimeShiftChange, UnassignChange, changes_to_dicts
from tourdispatch.drag import AssignIntent, GroupAssignIntent, ReassignIntent, TimeShiftIntent, UnassignIntent
from tourdispatch.errors import EmptyHistoryError, MutationInFlightError, RemoteMutationError
from tourdispatch.oplog import OperationLog, build_operation


class _FakeApplier:
    """Records batches; answers with queued results (default: full success)."""

    def __init__(self):
        self.calls = []
        self.results = []
        self.during_call = None

    def batch_apply_changes(self, date, changes):
        self.calls.append((date, tuple(changes)))
        if self.during_call is not None:
            self.during_call()
        if self.results:
            r = self.results.pop(0)
            if isinstance(r, Exception):
                raise r
            return r
        return BatchResult(success=True, applied=len(changes))


def _assign_op(bid="B", gid="G"):
    return build_operation(AssignIntent(booking_id=bid, to_guide_id=gid), {"G": "Gina"})


class TestBuildOperationContract(unittest.TestCase):
    def test_assign_inverse_is_unassign(self) -> None:
        op = _assign_op()
        self.assertEqual(op.forward, (AssignChange(booking_id="B", to_guide_id="G"),))
        self.assertEqual(changes_to_dicts(op.inverse), [{"type": "unassign", "bookingIds": ["B"], "fromGuideId": "G"}])
        self.assertEqual(op.description, "Assign booking B to Gina")
        self.assertNotEqual(op.id, _assign_op().id)

    def test_group_assign(self) -> None:
        op = build_operation(GroupAssignIntent(booking_ids=("a", "b"), to_guide_id="G"))
        self.assertEqual([c.booking_id for c in op.forward], ["a", "b"])
        self.assertEqual(op.inverse, (UnassignChange(booking_ids=("a", "b"), from_guide_id="G"),))
        self.assertEqual(op.description, "Assign 2 bookings to G")

    def test_assign_at_new_time_restores_time_before_unassign(self) -> None:
        op = build_operation(
            GroupAssignIntent(booking_ids=("a", "b"), to_guide_id="G", previous_start_time="09:00", new_start_time="14:00"),
            {"G": "Gina"},
        )
        self.assertEqual(
            op.forward,
            (
                AssignChange(booking_id="a", to_guide_id="G"),
                AssignChange(booking_id="b", to_guide_id="G"),
                TimeShiftChange(booking_ids=("a", "b"), guide_id="G", new_start_time="14:00"),
            ),
        )
        self.assertEqual(
            op.inverse,
            (
                TimeShiftChange(booking_ids=("a", "b"), guide_id="G", new_start_time="09:00"),
                UnassignChange(booking_ids=("a", "b"), from_guide_id="G"),
            ),
        )
        self.assertEqual(op.description, "Assign 2 bookings to Gina at 2 PM")

        with self.assertRaises(ValueError):
            build_operation(AssignIntent(booking_id="a", to_guide_id="G", new_start_time="14:00"))

    def test_time_shift(self) -> None:
        op = build_operation(
            TimeShiftIntent(booking_ids=("a",), guide_id="G", previous_start_time="09:00", new_start_time="09:30")
        )
        self.assertEqual(op.forward, (TimeShiftChange(booking_ids=("a",), guide_id="G", new_start_time="09:30"),))
        self.assertEqual(op.inverse, (TimeShiftChange(booking_ids=("a",), guide_id="G", new_start_time="09:00"),))
        self.assertEqual(op.description, "Move booking a from 9 AM to 9:30 AM")

    def test_reassign_plain_and_with_time(self) -> None:
        op = build_operation(ReassignIntent(booking_ids=("a",), from_guide_id="G1", to_guide_id="G2", previous_start_time="09:00"))
        self.assertEqual(op.forward, (ReassignChange(booking_ids=("a",), from_guide_id="G1", to_guide_id="G2"),))
        self.assertEqual(op.inverse, (ReassignChange(booking_ids=("a",), from_guide_id="G2", to_guide_id="G1"),))

        op = build_operation(
            ReassignIntent(
                booking_ids=("a",), from_guide_id="G1", to_guide_id="G2", previous_start_time="09:00", new_start_time="13:00"
            )
        )
        self.assertEqual(
            op.forward,
            (
                ReassignChange(booking_ids=("a",), from_guide_id="G1", to_guide_id="G2"),
                TimeShiftChange(booking_ids=("a",), guide_id="G2", new_start_time="13:00"),
            ),
        )
        self.assertEqual(
            op.inverse,
            (
                TimeShiftChange(booking_ids=("a",), guide_id="G2", new_start_time="09:00"),
                ReassignChange(booking_ids=("a",), from_guide_id="G2", to_guide_id="G1"),
            ),
        )
        self.assertTrue(op.description.endswith("at 1 PM"))

    def test_unassign_inverse_assigns_each_booking(self) -> None:
        op = build_operation(UnassignIntent(booking_ids=("a", "b"), from_guide_id="G"))
        self.assertEqual(op.forward, (UnassignChange(booking_ids=("a", "b"), from_guide_id="G"),))
        self.assertEqual(op.inverse, (AssignChange("a", "G"), AssignChange("b", "G")))

    def test_rejects_non_intents(self) -> None:
        with self.assertRaises(TypeError):
            build_operation("assign")  # type: ignore[arg-type]


class TestOperationLogContract(unittest.TestCase):
    def setUp(self) -> None:
        self.applier = _FakeApplier()
        self.refreshes = 0
        self.log = OperationLog(self.applier, "2026-03-14", refresh=self._refresh)

    def _refresh(self) -> None:
        self.refreshes += 1

    def test_commit_then_undo_sends_inverse(self) -> None:
        op = _assign_op()
        self.log.commit(op)
        self.assertEqual(self.log.undo_count, 1)
        self.assertEqual(self.log.last_description, "Assign booking B to Gina")

        undone = self.log.undo()
        self.assertIs(undone, op)
        self.assertEqual(self.applier.calls[-1], ("2026-03-14", (UnassignChange(booking_ids=("B",), from_guide_id="G"),)))
        self.assertEqual((self.log.undo_count, self.log.redo_count), (0, 1))

        self.log.redo()
        self.assertEqual(self.applier.calls[-1][1], op.forward)
        self.assertEqual((self.log.undo_count, self.log.redo_count), (1, 0))
        self.assertEqual(self.refreshes, 3)

    def test_new_commit_clears_redo(self) -> None:
        self.log.commit(_assign_op("a"))
        self.log.undo()
        self.assertTrue(self.log.can_redo)
        self.log.commit(_assign_op("b"))
        self.assertFalse(self.log.can_redo)
        self.assertEqual(self.log.history(), ["Assign booking b to Gina"])

    def test_partial_batch_is_not_recorded(self) -> None:
        self.applier.results.append(BatchResult(success=True, applied=0, failed=1, errors=("conflict",)))
        with self.assertRaises(RemoteMutationError) as cm:
            self.log.commit(_assign_op())
        self.assertEqual(cm.exception.result.failed, 1)
        self.assertIn("conflict", str(cm.exception))
        self.assertEqual(self.log.undo_count, 0)
        self.assertEqual(self.refreshes, 1)
        self.assertFalse(self.log.is_mutating)

    def test_transport_error_is_chained(self) -> None:
        self.applier.results.append(OSError("network down"))
        with self.assertRaises(RemoteMutationError) as cm:
            self.log.commit(_assign_op())
        self.assertIsInstance(cm.exception.__cause__, OSError)
        self.assertEqual(self.log.undo_count, 0)

    def test_failed_undo_keeps_stacks(self) -> None:
        self.log.commit(_assign_op())
        self.applier.results.append(BatchResult(success=False, applied=0, failed=1))
        with self.assertRaises(RemoteMutationError):
            self.log.undo()
        self.assertEqual((self.log.undo_count, self.log.redo_count), (1, 0))

    def test_empty_history_fails_loudly(self) -> None:
        with self.assertRaises(EmptyHistoryError):
            self.log.undo()
        with self.assertRaises(EmptyHistoryError):
            self.log.redo()
        self.assertEqual(self.applier.calls, [])

    def test_single_flight(self) -> None:
        self.log.commit(_assign_op("a"))
        seen = {}

        def reenter():
            seen["mutating"] = self.log.is_mutating
            seen["can_undo"] = self.log.can_undo
            try:
                self.log.undo()
            except MutationInFlightError as e:
                seen["error"] = e

        self.applier.during_call = reenter
        self.log.commit(_assign_op("b"))
        self.assertTrue(seen["mutating"])
        self.assertFalse(seen["can_undo"])
        self.assertIsInstance(seen["error"], MutationInFlightError)
        self.assertEqual(self.log.undo_count, 2)
        self.assertFalse(self.log.is_mutating)

    def test_history_cap_drops_oldest(self) -> None:
        log = OperationLog(self.applier, "2026-03-14", max_history=3)
        for bid in ("a", "b", "c", "d", "e"):
            log.commit(_assign_op(bid))
        self.assertEqual(log.undo_count, 3)
        self.assertEqual(log.history(), ["Assign booking c to Gina", "Assign booking d to Gina", "Assign booking e to Gina"])
        with self.assertRaises(ValueError):
            OperationLog(self.applier, "2026-03-14", max_history=0)

    def test_refresh_failure_does_not_mask_result(self) -> None:
        def boom():
            raise RuntimeError("refresh failed")

        log = OperationLog(self.applier, "2026-03-14", refresh=boom)
        with self.assertLogs("tourdispatch.oplog", level="WARNING"):
            log.commit(_assign_op())
        self.assertEqual(log.undo_count, 1)


if __name__ == "__main__":
    unittest.main(verbosity=2)
