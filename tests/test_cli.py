from __future__ import annotations

import contextlib
import io
import json
import os
import unittest
from unittest import mock

from interface.cli import build_coordinator, main
from infrastructure.settings import Settings
from support import ACTOR, DatabaseTestCase


class CliTests(DatabaseTestCase):
    def test_build_coordinator_exposes_all_planner_kinds(self) -> None:
        services = build_coordinator(Settings(), session_factory=self.session_factory)

        self.assertEqual(services.coordinator.strategy_kinds, ["approvals", "fleet", "openai", "simple"])
        self.assertIs(services.session_factory, self.session_factory)

    def test_main_runs_goal_and_prints_events(self) -> None:
        env = {
            "DATABASE_URL": f"sqlite:///{self._tmp.name}/planner.db",
            "OPENAI_API_KEY": "",
            "PLANNER_ACTOR_ID": ACTOR,
            "PLANNER_KIND": "simple",
            "PLANNER_CONTEXT": json.dumps({"customerId": self.seed.customer_id, "vehicleId": self.seed.vehicle_id}),
        }
        out = io.StringIO()
        with mock.patch.dict(os.environ, env), mock.patch("builtins.input", return_value="Brake inspection"):
            with contextlib.redirect_stdout(out):
                main()

        printed = out.getvalue()
        summary = json.loads(printed[: printed.index("}") + 1])
        self.assertEqual(summary["status"], "succeeded")
        self.assertIsNone(summary["error"])
        self.assertIn("create_work_order", printed)
        self.assertIn("final", printed)


if __name__ == "__main__":
    unittest.main()
