from __future__ import annotations

import unittest


class TestPublicApiLockContract(unittest.TestCase):
    def test_api_module_exports_are_present(self) -> None:
        import tourdispatch.api as api

        self.assertTrue(hasattr(api, "__all__"))
        self.assertIsInstance(api.__all__, (list, tuple))
        self.assertEqual(len(api.__all__), len(set(api.__all__)), "duplicate names in tourdispatch.api.__all__")

        for name in api.__all__:
            self.assertIsInstance(name, str)
            self.assertTrue(hasattr(api, name), f"tourdispatch.api missing public name: {name}")
            self.assertIsNotNone(getattr(api, name), f"tourdispatch.api {name} is None")

    def test_package_reexports_match_api_all(self) -> None:
        import tourdispatch
        import tourdispatch.api as api

        self.assertEqual(tourdispatch.__all__, list(api.__all__))
        for name in api.__all__:
            self.assertTrue(hasattr(tourdispatch, name), f"tourdispatch package does not re-export: {name}")
            self.assertIs(getattr(tourdispatch, name), getattr(api, name))

    def test_core_operations_are_public(self) -> None:
        import tourdispatch.api as api

        for name in (
            "group_bookings_into_tour_runs",
            "layout_lanes",
            "validate_drop",
            "position_to_time",
            "DragMachine",
            "OperationLog",
            "DispatchSession",
        ):
            self.assertIn(name, api.__all__)

    def test_load_snapshot(self) -> None:
        from pathlib import Path

        import tourdispatch.api as api

        fixture = Path(__file__).resolve().parent / "fixtures" / "dispatch_day_fixture.json"
        snap = api.load_snapshot(fixture)
        self.assertEqual(snap.date, "2026-03-14")
        self.assertEqual(len(api.load_dispatch_json(fixture)["timelines"]), 4)


if __name__ == "__main__":
    unittest.main(verbosity=2)
