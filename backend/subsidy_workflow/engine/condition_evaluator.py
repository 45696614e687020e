"""Condition Evaluator - Safe evaluation of guard conditions"""
from typing import Any, Dict, List

from ..domain.models import ConditionGroup, Condition, Requirement
from ..domain.enums import ConditionOperator, ConditionLogic
from ..utils.logger import get_logger

logger = get_logger(__name__)

_MISSING = object()


class ConditionEvaluator:
    """
    Evaluate guard requirements against a guard context

    The context is a plain dict with three sections:
    - facts: values supplied by the document/task stores
    - case: the workflow projection of the case (plus derived values)
    - actor: the acting user

    Uses a simple DSL - no eval() or exec().
    """

    def unmet_requirements(
        self,
        requirements: List[Requirement],
        context: Dict[str, Any]
    ) -> List[Requirement]:
        """Return the requirements that do not hold, in declared order"""
        return [r for r in requirements if not self.evaluate(r.condition, context)]

    def describe_unmet(self, requirement: Requirement, context: Dict[str, Any]) -> str:
        """
        Reason for an unmet requirement, with its detail field when that has a value

        Example: "required documents not verified: ID card, Property deed"
        """
        if not requirement.detail_field:
            return requirement.unmet_reason

        detail = self._get_field_value(requirement.detail_field, context)
        if isinstance(detail, (list, tuple, set)):
            detail = ", ".join(str(d) for d in detail)
        if detail is None or detail == "":
            return requirement.unmet_reason
        return requirement.unmet_reason + requirement.detail_format.format(detail)

    def evaluate(
        self,
        condition_group: ConditionGroup,
        context: Dict[str, Any]
    ) -> bool:
        """
        Evaluate a condition group

        Args:
            condition_group: Group of conditions with AND/OR logic
            context: Guard context

        Returns:
            True if conditions are met
        """
        if not condition_group.conditions:
            return True  # No conditions = always true

        results = [self._evaluate_single(c, context) for c in condition_group.conditions]

        if condition_group.logic == ConditionLogic.OR:
            return any(results)
        return all(results)

    def _evaluate_single(
        self,
        condition: Condition,
        context: Dict[str, Any]
    ) -> bool:
        """Evaluate a single condition"""
        try:
            field_value = self._get_field_value(condition.field, context)
            if condition.value_field:
                compare_value = self._get_field_value(condition.value_field, context)
            else:
                compare_value = condition.value

            return self._compare(field_value, condition.operator, compare_value)

        except Exception as e:
            logger.warning(f"Condition evaluation failed for {condition.field}: {e}")
            return False  # Fail closed

    def _get_field_value(self, field_path: str, context: Dict[str, Any]) -> Any:
        """
        Get field value from context using dot notation

        Example: "facts.control_photos.count" -> context["facts"]["control_photos"]["count"]
        Flat keys containing dots are matched first, so facts may be nested or flat.
        """
        value = self._lookup(context, field_path.split("."))
        return None if value is _MISSING else value

    def _lookup(self, value: Any, parts: List[str]) -> Any:
        if not parts:
            return value
        if not isinstance(value, dict):
            return _MISSING

        # Try the longest dotted key first ("documents.verified" stored flat)
        for i in range(len(parts), 0, -1):
            key = ".".join(parts[:i])
            if key in value:
                found = self._lookup(value[key], parts[i:])
                if found is not _MISSING:
                    return found
        return _MISSING

    def _compare(
        self,
        field_value: Any,
        operator: ConditionOperator,
        compare_value: Any
    ) -> bool:
        """Compare values using operator"""

        if operator == ConditionOperator.EQUALS:
            return field_value == compare_value

        elif operator == ConditionOperator.NOT_EQUALS:
            return field_value != compare_value

        elif operator == ConditionOperator.GREATER_THAN:
            return self._compare_numeric(field_value, compare_value, lambda a, b: a > b)

        elif operator == ConditionOperator.LESS_THAN:
            return self._compare_numeric(field_value, compare_value, lambda a, b: a < b)

        elif operator == ConditionOperator.GREATER_THAN_OR_EQUALS:
            return self._compare_numeric(field_value, compare_value, lambda a, b: a >= b)

        elif operator == ConditionOperator.LESS_THAN_OR_EQUALS:
            return self._compare_numeric(field_value, compare_value, lambda a, b: a <= b)

        elif operator == ConditionOperator.CONTAINS:
            if field_value is None:
                return False
            if isinstance(field_value, (list, tuple, set, frozenset)):
                return compare_value in field_value
            return str(compare_value) in str(field_value)

        elif operator == ConditionOperator.NOT_CONTAINS:
            if field_value is None:
                return True
            if isinstance(field_value, (list, tuple, set, frozenset)):
                return compare_value not in field_value
            return str(compare_value) not in str(field_value)

        elif operator == ConditionOperator.IN:
            if not isinstance(compare_value, (list, tuple, set, frozenset)):
                compare_value = [compare_value]
            return field_value in compare_value

        elif operator == ConditionOperator.NOT_IN:
            if not isinstance(compare_value, (list, tuple, set, frozenset)):
                compare_value = [compare_value]
            return field_value not in compare_value

        elif operator == ConditionOperator.IS_EMPTY:
            return field_value is None or field_value == "" or field_value == [] or field_value == ()

        elif operator == ConditionOperator.IS_NOT_EMPTY:
            return field_value is not None and field_value != "" and field_value != [] and field_value != ()

        return False

    def _compare_numeric(
        self,
        field_value: Any,
        compare_value: Any,
        comparator
    ) -> bool:
        """Compare numeric values; a missing fact never satisfies a numeric bound"""
        if field_value is None:
            return False
        try:
            a = float(field_value)
            b = float(compare_value) if compare_value is not None else 0
            return comparator(a, b)
        except (ValueError, TypeError):
            return False
