from __future__ import annotations

from application.strategies.approvals import ApprovalPlanner
from application.strategies.base import PlannerStrategy, StrategyRegistry
from application.strategies.fleet import FleetPlanner
from application.strategies.llm import LLMPlanner
from application.strategies.simple import SimplePlanner
from llm.goal_parser import GoalParserLLM

__all__ = [
    "ApprovalPlanner",
    "FleetPlanner",
    "LLMPlanner",
    "PlannerStrategy",
    "SimplePlanner",
    "StrategyRegistry",
    "build_strategies",
]


def build_strategies(goal_parser: GoalParserLLM) -> StrategyRegistry:
    simple = SimplePlanner()
    return StrategyRegistry(
        [
            simple,
            LLMPlanner(goal_parser, fallback=simple),
            FleetPlanner(),
            ApprovalPlanner(),
        ]
    )
