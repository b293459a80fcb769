import unittest

from tourdispatch.grouping import group_bookings_into_tour_runs, group_unassigned
from tourdispatch.layout import layout_lanes
from tourdispatch.model import CHARTER, SHARED, Booking, TourRun


def _b(bid, tour="t1", start="09:00", dur=60, guests=2, mode=SHARED, guide="g1"):
    return Booking(
        id=bid,
        customer_name=f"Customer {bid}",
        tour_id=tour,
        tour_name=tour.upper(),
        start_time=start,
        tour_duration_min=dur,
        experience_mode=mode,
        guide_id=guide,
        adult_count=guests,
    )


def _run(key, start_min, end_min, guests=2):
    h, m = divmod(start_min, 60)
    return TourRun(
        key=key,
        guide_id="g1",
        tour_id="t1",
        tour_name="T1",
        start_time=f"{h:02d}:{m:02d}",
        start_min=start_min,
        end_min=end_min,
        guest_count=guests,
        booking_ids=(key,),
    )


def _shape(runs):
    return [(r.key, frozenset(r.booking_ids), r.guest_count) for r in runs]


class TestTourRunGroupingContract(unittest.TestCase):
    def test_shared_bookings_merge_per_tour_and_time(self) -> None:
        runs = group_bookings_into_tour_runs([_b("a", guests=4), _b("b", guests=2), _b("c", start="11:00")])
        self.assertEqual([r.key for r in runs], ["t1|09:00", "t1|11:00"])
        first = runs[0]
        self.assertEqual(first.booking_ids, ("a", "b"))
        self.assertEqual(first.guest_count, 6)
        self.assertEqual((first.start_min, first.end_min), (540, 600))
        self.assertEqual(first.guide_id, "g1")
        self.assertEqual(runs[1].booking_ids, ("c",))

    def test_charters_never_merge(self) -> None:
        runs = group_bookings_into_tour_runs([_b("a", mode=CHARTER), _b("b", mode=CHARTER), _b("c")])
        self.assertEqual(len(runs), 3)
        charters = [r for r in runs if r.is_charter]
        self.assertEqual(sorted(r.booking_ids for r in charters), [("a",), ("b",)])
        self.assertEqual(len({r.key for r in runs}), 3)

    def test_run_end_follows_longest_member(self) -> None:
        runs = group_bookings_into_tour_runs([_b("a", dur=60), _b("b", dur=90)])
        self.assertEqual(runs[0].end_min, 540 + 90)
        self.assertEqual(runs[0].duration_min, 90)

    def test_grouping_is_idempotent_and_order_independent(self) -> None:
        items = [
            _b("a"),
            _b("b", start="13:00", tour="t2"),
            _b("c", mode=CHARTER, start="15:00"),
            _b("d"),
            _b("e", start="13:00", tour="t2", guests=5),
        ]
        once = group_bookings_into_tour_runs(items)
        twice = group_bookings_into_tour_runs(items)
        reversed_runs = group_bookings_into_tour_runs(list(reversed(items)))
        self.assertEqual(once, twice)
        self.assertEqual(_shape(once), _shape(reversed_runs))

    def test_rejects_mixed_guides_and_duplicates(self) -> None:
        with self.assertRaises(ValueError):
            group_bookings_into_tour_runs([_b("a", guide="g1"), _b("b", guide="g2")])
        with self.assertRaises(ValueError):
            group_bookings_into_tour_runs([_b("a"), _b("a")])

    def test_empty_input(self) -> None:
        self.assertEqual(group_bookings_into_tour_runs([]), [])


class TestUnassignedPoolGroupingContract(unittest.TestCase):
    def test_groups_by_run_key_and_charters_alone(self) -> None:
        pool = [
            _b("x", guide=None, start="10:00", guests=3),
            _b("y", guide=None, start="09:00"),
            _b("z", guide=None, start="09:00", guests=1),
            _b("p", guide=None, start="09:00", mode=CHARTER),
            _b("assigned", guide="g1"),
        ]
        groups = group_unassigned(pool)
        self.assertEqual([g.id for g in groups], ["charter_p", "run_t1|09:00", "run_t1|10:00"])
        shared = groups[1]
        self.assertEqual(shared.booking_ids, ("y", "z"))
        self.assertEqual(shared.total_guests, 3)
        self.assertEqual(shared.total_bookings, 2)
        self.assertFalse(shared.is_charter)
        self.assertTrue(groups[0].is_charter)


class TestLaneLayoutContract(unittest.TestCase):
    def test_greedy_partitioning(self) -> None:
        a = _run("a", 540, 600)
        b = _run("b", 570, 630)
        c = _run("c", 600, 660)
        d = _run("d", 630, 700)
        lanes = layout_lanes([d, c, b, a])
        self.assertEqual([[r.key for r in lane] for lane in lanes], [["a", "c"], ["b", "d"]])

    def test_lanes_never_overlap(self) -> None:
        runs = [_run(f"r{i}", 360 + i * 20, 360 + i * 20 + 75) for i in range(12)]
        for lane in layout_lanes(runs):
            for prev, nxt in zip(lane, lane[1:]):
                self.assertLessEqual(prev.end_min, nxt.start_min)

    def test_empty_guide_has_no_lanes(self) -> None:
        self.assertEqual(layout_lanes([]), [])


if __name__ == "__main__":
    unittest.main(verbosity=2)
