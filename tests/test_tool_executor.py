from __future__ import annotations

import unittest

from pydantic import BaseModel
from sqlalchemy import func, select

from application.tool_executor import ToolExecutor
from domain.errors import ToolExecutionError, UnknownToolError
from domain.schemas import ToolContext
from infrastructure.mail.outbox import OutboxMailer
from infrastructure.persistence.tables import Customer
from support import ACTOR, TENANT, DatabaseTestCase, registry_with
from tools.base import Tool, ToolEnvironment


class _CrashIn(BaseModel):
    name: str


class _CrashOut(BaseModel):
    customer_id: str


class _CreateThenCrashTool(Tool):
    """Writes a customer and then blows up before returning."""

    name = "create_then_crash"
    input_model = _CrashIn
    output_model = _CrashOut

    def run(self, payload: _CrashIn, context: ToolContext, env: ToolEnvironment) -> _CrashOut:
        env.session.add(Customer(tenant_id=context.tenant_id, name=payload.name))
        env.session.flush()
        raise RuntimeError("boom")


class ToolExecutorTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.session = self.session_factory()
        self.executor = ToolExecutor(
            registry_with(_CreateThenCrashTool()),
            ToolEnvironment(session=self.session, mailer=OutboxMailer(self.session)),
        )
        self.context = ToolContext(tenant_id=TENANT, actor_id=ACTOR, run_id="run_test")
        self.emitted = []

    def tearDown(self) -> None:
        self.session.close()
        super().tearDown()

    def _emit(self, event) -> bool:
        self.emitted.append(event)
        return True

    def _customer_count(self, name: str) -> int:
        with self.session_factory() as session:
            return session.scalar(select(func.count()).select_from(Customer).where(Customer.name == name))

    def test_successful_call_is_bracketed_and_committed(self) -> None:
        output = self.executor.call("create_customer", {"name": "Bob Smith"}, self.context, self._emit)

        self.assertIn("customer_id", output)
        self.assertEqual([e.kind for e in self.emitted], ["tool_call", "tool_result"])
        self.assertEqual(self.emitted[0].name, "create_customer")
        self.assertEqual(self.emitted[1].output, output)
        # Visible from a separate session, so the call was committed.
        self.assertEqual(self._customer_count("Bob Smith"), 1)
        self.assertEqual(self.executor.calls_made, 1)

    def test_unknown_tool_raises_before_any_event(self) -> None:
        with self.assertRaises(UnknownToolError):
            self.executor.call("no_such_tool", {}, self.context, self._emit)

        self.assertEqual(self.emitted, [])
        self.assertEqual(self.executor.calls_made, 0)

    def test_invalid_input_fails_after_tool_call_event(self) -> None:
        with self.assertRaises(ToolExecutionError) as ctx:
            self.executor.call("create_work_order", {"customer_id": self.seed.customer_id}, self.context, self._emit)

        self.assertEqual(ctx.exception.reason, "invalid_input")
        self.assertIn("vehicle_id", ctx.exception.message)
        self.assertEqual([e.kind for e in self.emitted], ["tool_call"])

    def test_domain_failure_keeps_reason(self) -> None:
        with self.assertRaises(ToolExecutionError) as ctx:
            self.executor.call("create_customer", {"name": "Jane Doe"}, self.context, self._emit)

        self.assertEqual(ctx.exception.reason, "duplicate")
        self.assertEqual(ctx.exception.tool, "create_customer")

    def test_unexpected_crash_is_wrapped_and_rolled_back(self) -> None:
        with self.assertRaises(ToolExecutionError) as ctx:
            self.executor.call("create_then_crash", {"name": "Ghost Customer"}, self.context, self._emit)

        self.assertEqual(ctx.exception.reason, "unexpected")
        self.assertIn("boom", ctx.exception.message)
        self.assertEqual(self._customer_count("Ghost Customer"), 0)

    def test_earlier_calls_survive_a_later_failure(self) -> None:
        self.executor.call("create_customer", {"name": "Kept Customer"}, self.context, self._emit)
        with self.assertRaises(ToolExecutionError):
            self.executor.call("create_then_crash", {"name": "Ghost Customer"}, self.context, self._emit)

        self.assertEqual(self._customer_count("Kept Customer"), 1)
        self.assertEqual(self._customer_count("Ghost Customer"), 0)

    def test_cross_tenant_row_is_rejected(self) -> None:
        with self.assertRaises(ToolExecutionError) as ctx:
            self.executor.call(
                "create_work_order",
                {"customer_id": self.seed.other_customer_id, "vehicle_id": self.seed.other_vehicle_id},
                self.context,
                self._emit,
            )

        self.assertEqual(ctx.exception.reason, "cross_tenant")


if __name__ == "__main__":
    unittest.main()
