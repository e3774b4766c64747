from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from domain.schemas import ParsedGoal
from infrastructure.llm.llm_client import LLMClient

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = " ".join(
    [
        "You write strict JSON for auto-repair shop orchestration.",
        "Output ONLY a JSON object; no prose.",
        "Keys allowed: customerQuery, plateOrVin, orderType, notes, lines, emailInvoiceTo, emailSubject, photoUrl, inspection, autoApprove, approvalMethod.",
        "Each line must include: description (required); jobType (maintenance|repair|diagnosis|inspection) if inferable; laborHours number if inferable; notes optional.",
        "If you cannot infer something, omit it.",
        "If a custom inspection is implied, set 'inspection' with title, selections{section:[items]}, services[], vehicleType, includeAxle/includeOil.",
        "If the goal clearly implies advisor/customer approval, you may set autoApprove: true and an approvalMethod string (e.g. 'advisor_auto', 'customer_signed', 'phone_call').",
    ]
)

HINT_KEYS = ("customerQuery", "plateOrVin", "emailInvoiceTo", "imageUrl", "mode")


class GoalParserLLM:
    """Builds the goal-parsing prompt and parses the LLM's strict JSON reply."""

    def __init__(self, llm_client: LLMClient):
        self._llm = llm_client

    @property
    def available(self) -> bool:
        return getattr(self._llm, "configured", True)

    def build_prompt(self, goal: str, context: dict[str, Any]) -> str:
        hints = {key: context.get(key) for key in HINT_KEYS if context.get(key) is not None}
        return f"Goal:\n{goal}\n\nUI hints:\n{json.dumps(hints, default=str)}"

    def parse_goal(self, goal: str, context: dict[str, Any]) -> ParsedGoal:
        prompt = self.build_prompt(goal, context)
        raw = self._llm.complete(SYSTEM_PROMPT, prompt).strip()

        if not raw:
            logger.info("GoalParserLLM empty response; using context hints only")
            return ParsedGoal()

        try:
            parsed = ParsedGoal.model_validate_json(raw)
        except ValidationError:
            logger.info("GoalParserLLM invalid JSON; using context hints only")
            return ParsedGoal()

        parsed.lines = [line for line in parsed.lines if line.description.strip()]
        logger.info("GoalParserLLM parsed goal lines=%d inspection=%s", len(parsed.lines), parsed.inspection is not None)
        return parsed
