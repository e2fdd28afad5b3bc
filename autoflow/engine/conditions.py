"""
Condition evaluation for condition nodes and trigger filters.

A predicate is ``{"field": ..., "operator": ..., "value": ...}`` compared
against the run context. Predicates nest with ``{"all": [...]}`` and
``{"any": [...]}``. Evaluation is pure: no I/O, no mutation of the context.

A field missing from the context makes the predicate false (``not_exists``
is the one operator for which absence is true).

Stored editor documents may also use the email-engagement shape
``{"conditionType": "emailAction", "emailAction": "opened",
"emailScope": "previousEmail"}``, which reads the counters the last email
node left under ``lastEmail`` in the context.
"""

from typing import Any, Dict, List, Optional
import math

from autoflow.engine.errors import ConditionError


_MISSING = object()

NUMERIC_OPERATORS = {
    ">": "gt",
    ">=": "gte",
    "<": "lt",
    "<=": "lte",
    "gt": "gt",
    "gte": "gte",
    "lt": "lt",
    "lte": "lte",
}

EQUALITY_OPERATORS = {
    "==": "eq",
    "=": "eq",
    "eq": "eq",
    "equals": "eq",
    "!=": "neq",
    "neq": "neq",
    "not_equals": "neq",
}

MEMBERSHIP_OPERATORS = {"in", "not_in", "contains"}
EXISTENCE_OPERATORS = {"exists", "not_exists"}

SUPPORTED_OPERATORS = sorted(
    set(NUMERIC_OPERATORS) | set(EQUALITY_OPERATORS)
    | MEMBERSHIP_OPERATORS | EXISTENCE_OPERATORS
)

# emailAction -> counter on the last email confirmation
EMAIL_ACTION_FIELDS = {
    "opened": "opens",
    "clicked": "clicks",
}


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and not (isinstance(value, float) and not math.isfinite(value))
    )


def email_action_predicate(params: Dict[str, Any]) -> Dict[str, Any]:
    """
    Translate an email-engagement condition into a plain predicate.

    Raises:
        ConditionError: If the condition type, action or scope is unsupported
    """
    condition_type = params.get("conditionType")
    if condition_type != "emailAction":
        raise ConditionError(f"Unknown condition type '{condition_type}'")

    action = params.get("emailAction")
    counter = EMAIL_ACTION_FIELDS.get(action)
    if counter is None:
        raise ConditionError(f"Unknown email action '{action}'")

    scope = params.get("emailScope", "previousEmail")
    if scope != "previousEmail":
        raise ConditionError(f"Unsupported email scope '{scope}'")

    return {"field": f"lastEmail.{counter}", "operator": ">", "value": 0}


def _equals(actual: Any, expected: Any) -> bool:
    # bool is an int subclass; keep True distinct from 1
    if isinstance(actual, bool) or isinstance(expected, bool):
        return type(actual) is type(expected) and actual == expected
    return actual == expected


def resolve_field(context: Dict[str, Any], field: str) -> Any:
    """Resolve a dotted path in the context, returning _MISSING if absent."""
    current: Any = context
    for part in field.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


class ConditionEvaluator:
    """
    Evaluates condition parameters against a context.

    Usage:
        evaluator = ConditionEvaluator()
        evaluator.evaluate({"field": "opens", "operator": ">", "value": 5}, {"opens": 10})
    """

    def __init__(self, max_depth: int = 10):
        self.max_depth = max_depth

    def evaluate(self, params: Dict[str, Any], context: Dict[str, Any]) -> bool:
        """
        Evaluate a predicate or predicate group.

        Raises:
            ConditionError: If the parameters are malformed
        """
        if not isinstance(context, dict):
            raise ConditionError("Context must be a mapping")
        return self._evaluate(params, context, depth=1)

    def validate(self, params: Any) -> List[str]:
        """
        Check parameter shape without a context.

        Returns:
            List of validation errors (empty if valid)
        """
        try:
            self._check(params, depth=1)
        except ConditionError as e:
            return [str(e)]
        return []

    def _evaluate(self, params: Any, context: Dict[str, Any], depth: int) -> bool:
        self._check_depth(depth)
        if not isinstance(params, dict):
            raise ConditionError("Condition must be a mapping")

        if "all" in params:
            return all(
                self._evaluate(child, context, depth + 1)
                for child in self._children(params, "all")
            )
        if "any" in params:
            return any(
                self._evaluate(child, context, depth + 1)
                for child in self._children(params, "any")
            )

        field, operator, expected = self._predicate(params)
        actual = resolve_field(context, field)

        if operator in EXISTENCE_OPERATORS:
            exists = actual is not _MISSING and actual is not None
            return exists if operator == "exists" else not exists

        if actual is _MISSING:
            return False

        if operator in EQUALITY_OPERATORS:
            equal = _equals(actual, expected)
            return equal if EQUALITY_OPERATORS[operator] == "eq" else not equal

        if operator in NUMERIC_OPERATORS:
            if not _is_number(actual):
                return False
            op = NUMERIC_OPERATORS[operator]
            if op == "gt":
                return actual > expected
            if op == "gte":
                return actual >= expected
            if op == "lt":
                return actual < expected
            return actual <= expected

        if operator == "contains":
            if isinstance(actual, str):
                return isinstance(expected, str) and expected in actual
            if isinstance(actual, (list, tuple, set)):
                return expected in actual
            return False

        result = actual in expected
        return result if operator == "in" else not result

    def _check(self, params: Any, depth: int) -> None:
        self._check_depth(depth)
        if not isinstance(params, dict):
            raise ConditionError("Condition must be a mapping")
        for group in ("all", "any"):
            if group in params:
                for child in self._children(params, group):
                    self._check(child, depth + 1)
                return
        self._predicate(params)

    def _check_depth(self, depth: int) -> None:
        if depth > self.max_depth:
            raise ConditionError(f"Condition nesting deeper than {self.max_depth}")

    @staticmethod
    def _children(params: Dict[str, Any], group: str) -> List[Any]:
        children = params[group]
        if not isinstance(children, list):
            raise ConditionError(f"'{group}' must be a list of conditions")
        return children

    @staticmethod
    def _predicate(params: Dict[str, Any]):
        if "conditionType" in params:
            params = email_action_predicate(params)

        field = params.get("field")
        if not isinstance(field, str) or not field:
            raise ConditionError("Condition requires a non-empty 'field'")

        operator = params.get("operator")
        if not isinstance(operator, str):
            raise ConditionError("Condition requires an 'operator'")
        operator = operator.strip().lower()
        if operator not in SUPPORTED_OPERATORS:
            raise ConditionError(f"Unknown operator '{operator}'")

        expected = params.get("value")
        if operator in NUMERIC_OPERATORS and not _is_number(expected):
            raise ConditionError(f"Operator '{operator}' requires a numeric value")
        if operator in ("in", "not_in") and not isinstance(expected, list):
            raise ConditionError(f"Operator '{operator}' requires a list value")
        return field, operator, expected


def trigger_filter(params: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Build the predicate a trigger's params impose on event payloads.

    ``listId`` requires the payload's ``lists`` to contain it, ``conditions``
    is a list of predicates that must all hold, and a top-level
    ``field``/``operator``/``value`` is a single predicate. Returns None when
    the trigger matches every event.
    """
    if not params:
        return None

    predicates: List[Dict[str, Any]] = []
    list_id = params.get("listId")
    if list_id:
        predicates.append({"field": "lists", "operator": "contains", "value": list_id})

    conditions = params.get("conditions")
    if conditions is not None:
        if not isinstance(conditions, list):
            raise ConditionError("Trigger 'conditions' must be a list")
        predicates.extend(conditions)

    if "field" in params or "all" in params or "any" in params:
        predicates.append({
            key: params[key]
            for key in ("field", "operator", "value", "all", "any")
            if key in params
        })

    if not predicates:
        return None
    return {"all": predicates}
