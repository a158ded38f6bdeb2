from clinicflow.automation.actions import ActionError, ActionExecutor
from clinicflow.automation.conditions import ConditionEvaluator
from clinicflow.automation.context import ContextEnricher
from clinicflow.automation.engine import RuleEngine
from clinicflow.automation.limiter import ExecutionLimiter
from clinicflow.automation.templates import interpolate
from clinicflow.automation.types import AutomationRule, AutomationTrigger, ExecutionContext, ExecutionResult

__all__ = [
    "ActionError",
    "ActionExecutor",
    "AutomationRule",
    "AutomationTrigger",
    "ConditionEvaluator",
    "ContextEnricher",
    "ExecutionContext",
    "ExecutionLimiter",
    "ExecutionResult",
    "RuleEngine",
    "interpolate",
]
