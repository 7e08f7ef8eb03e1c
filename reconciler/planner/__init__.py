from reconciler.planner.authority import check_authority
from reconciler.planner.planner import ReconciliationPlanner, to_allowed_call

__all__ = ["ReconciliationPlanner", "check_authority", "to_allowed_call"]
