"""Workflow Registry - The closed, validated set of transition rules"""
from typing import Dict, Iterable, List, Optional, Tuple

from ..domain.models import TransitionRule, StateDefinition
from ..domain.enums import ApplicationState
from ..domain.errors import ConfigurationError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class WorkflowRegistry:
    """
    Immutable workflow definition with rule lookup

    Built once at startup. Construction validates the definition and raises
    ConfigurationError on the first class of problem found:
    - a state without a StateDefinition, or a definition for an unknown state
    - a rule whose from/to state is not a defined state
    - outbound rules on a terminal state
    - the same (from, to) pair declared twice
    - a rule with no allowed roles
    """

    def __init__(
        self,
        states: Iterable[StateDefinition],
        rules: Iterable[TransitionRule]
    ):
        self._states: Dict[ApplicationState, StateDefinition] = {}
        for definition in states:
            if definition.state in self._states:
                raise ConfigurationError(
                    f"State {definition.state.value} is defined twice",
                    details={"state": definition.state.value}
                )
            self._states[definition.state] = definition

        self._rules: Tuple[TransitionRule, ...] = tuple(rules)
        self._validate()

        self._by_source: Dict[ApplicationState, Tuple[TransitionRule, ...]] = {
            state: tuple(r for r in self._rules if r.from_state == state)
            for state in self._states
        }
        self._by_pair: Dict[Tuple[ApplicationState, ApplicationState], TransitionRule] = {
            (r.from_state, r.to_state): r for r in self._rules
        }

        logger.info(
            f"Workflow registry loaded: {len(self._states)} states, {len(self._rules)} rules"
        )

    def _validate(self) -> None:
        missing = [s.value for s in ApplicationState if s not in self._states]
        if missing:
            raise ConfigurationError(
                f"States without definition: {', '.join(missing)}",
                details={"missing_states": missing}
            )

        seen = set()
        for rule in self._rules:
            for state in (rule.from_state, rule.to_state):
                if state not in self._states:
                    raise ConfigurationError(
                        f"Rule {rule.label!r} references undefined state {state}",
                        details={"rule": rule.label}
                    )

            if self._states[rule.from_state].terminal:
                raise ConfigurationError(
                    f"Terminal state {rule.from_state.value} has an outbound rule to {rule.to_state.value}",
                    details={"from_state": rule.from_state.value, "to_state": rule.to_state.value}
                )

            pair = (rule.from_state, rule.to_state)
            if pair in seen:
                raise ConfigurationError(
                    f"Duplicate rule {rule.from_state.value} -> {rule.to_state.value}",
                    details={"from_state": rule.from_state.value, "to_state": rule.to_state.value}
                )
            seen.add(pair)

            if not rule.allowed_roles:
                raise ConfigurationError(
                    f"Rule {rule.from_state.value} -> {rule.to_state.value} has no allowed roles",
                    details={"from_state": rule.from_state.value, "to_state": rule.to_state.value}
                )

    # =========================================================================
    # Lookup
    # =========================================================================

    def rules_from(self, state: ApplicationState) -> List[TransitionRule]:
        """All rules leaving the state, in declared order"""
        return list(self._by_source.get(state, ()))

    def find_rule(
        self,
        from_state: ApplicationState,
        to_state: ApplicationState
    ) -> Optional[TransitionRule]:
        """Rule for the (from, to) pair, if one is defined"""
        return self._by_pair.get((from_state, to_state))

    def state_definition(self, state: ApplicationState) -> StateDefinition:
        return self._states[state]

    def is_terminal(self, state: ApplicationState) -> bool:
        return self._states[state].terminal

    @property
    def states(self) -> List[StateDefinition]:
        return [self._states[s] for s in ApplicationState]

    @property
    def rules(self) -> List[TransitionRule]:
        return list(self._rules)
