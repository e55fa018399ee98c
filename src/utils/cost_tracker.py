"""Cost estimation for generation runs."""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime

logger = logging.getLogger(__name__)

# Average aggregator cost per scene (story share + image generation)
COST_PER_SCENE = 0.07

# Per-run reports kept in memory; the oldest are dropped first
DEFAULT_MAX_REPORTS = 100


def calculate_cost(num_scenes: int, multiplier: float = 1.0) -> float:
    """Calculate the cost of generating ``num_scenes`` scenes.

    Args:
        num_scenes: Number of scenes
        multiplier: Preset cost multiplier

    Returns:
        Cost in USD
    """
    return num_scenes * COST_PER_SCENE * multiplier


def format_cost(cost: float) -> str:
    """Format a cost as a currency string, e.g. ``$0.21``."""
    return f"${cost:.2f}"


@dataclass
class CostReport:
    """Estimated and actual cost of one generation run."""

    generation_id: str
    estimated_cost_usd: float = 0.0
    actual_cost_usd: float = 0.0
    images_generated: int = 0
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "generation_id": self.generation_id,
            "estimated_cost_usd": round(self.estimated_cost_usd, 4),
            "actual_cost_usd": round(self.actual_cost_usd, 4),
            "images_generated": self.images_generated,
            "created_at": self.created_at,
        }


class GenerationCostTracker:
    """Tracks estimated versus actual cost across generation runs."""

    def __init__(
        self, budget_limit_usd: float | None = None, max_reports: int = DEFAULT_MAX_REPORTS
    ):
        """Initialize cost tracker.

        Args:
            budget_limit_usd: Optional budget limit in USD. Warning will be logged if exceeded.
            max_reports: Number of per-run reports to keep
        """
        self.budget_limit = budget_limit_usd or None
        self.max_reports = max_reports
        self.reports: OrderedDict[str, CostReport] = OrderedDict()
        self.total_cost = 0.0

    def estimate(self, generation_id: str, num_scenes: int, multiplier: float) -> float:
        """Record and return the estimated cost of a run."""
        cost = calculate_cost(num_scenes, multiplier)
        self.reports[generation_id] = CostReport(generation_id=generation_id, estimated_cost_usd=cost)
        self._prune()
        return cost

    def record_actual(self, generation_id: str, images_generated: int, multiplier: float) -> float:
        """Record and return the actual cost of a run from the images produced."""
        cost = calculate_cost(images_generated, multiplier)
        report = self.reports.setdefault(generation_id, CostReport(generation_id=generation_id))
        self._prune()
        self.total_cost += cost - report.actual_cost_usd
        report.actual_cost_usd = cost
        report.images_generated = images_generated
        self._check_budget()
        return cost

    def get_report(self, generation_id: str) -> CostReport | None:
        return self.reports.get(generation_id)

    def _prune(self) -> None:
        while len(self.reports) > self.max_reports:
            self.reports.popitem(last=False)

    def _check_budget(self) -> None:
        if self.budget_limit and self.total_cost > self.budget_limit:
            logger.warning(
                f"Budget exceeded: {format_cost(self.total_cost)} spent "
                f"(limit {format_cost(self.budget_limit)})"
            )
