"""Script to print and sanity-check the housing workflow definition

Run: python -m scripts.validate_workflow

Building the registry already fails on malformed rules; this script also
reports states that cannot be reached from DRAFT and working states with no
way out, and prints the rule table.
"""
import sys
from collections import deque
from typing import Dict, List, Set

from subsidy_workflow.domain.enums import ApplicationState
from subsidy_workflow.domain.errors import ConfigurationError
from subsidy_workflow.engine.definition import build_registry
from subsidy_workflow.engine.registry import WorkflowRegistry


def reachable_states(registry: WorkflowRegistry, start: ApplicationState = ApplicationState.DRAFT) -> Set[ApplicationState]:
    """States reachable from start by following rules"""
    seen = {start}
    pending = deque([start])
    while pending:
        state = pending.popleft()
        for rule in registry.rules_from(state):
            if rule.to_state not in seen:
                seen.add(rule.to_state)
                pending.append(rule.to_state)
    return seen


def analyze(registry: WorkflowRegistry) -> Dict[str, List[str]]:
    """Problems a rule table can have that registry validation allows"""
    reachable = reachable_states(registry)
    return {
        "unreachable": [s.state.value for s in registry.states if s.state not in reachable],
        "dead_ends": [
            s.state.value for s in registry.states
            if not s.terminal and not registry.rules_from(s.state)
        ],
    }


def print_definition(registry: WorkflowRegistry) -> None:
    print("=" * 60)
    print("STATES")
    print("=" * 60)
    for s in registry.states:
        sla = f"{s.sla_hours}h" if s.sla_hours else "-"
        flag = " (terminal)" if s.terminal else ""
        print(f"  {s.state.value:<26} SLA {sla:<6}{flag}")

    print("\n" + "=" * 60)
    print(f"RULES ({len(registry.rules)})")
    print("=" * 60)
    for r in registry.rules:
        roles = ", ".join(sorted(role.value for role in r.allowed_roles))
        print(f"  {r.from_state.value} -> {r.to_state.value}  [{roles}]  {r.label}")
        for requirement in r.guard:
            print(f"      needs: {requirement.label}")


def main() -> int:
    try:
        registry = build_registry()
    except ConfigurationError as e:
        print(f"Invalid workflow definition: {e.message}")
        return 1

    print_definition(registry)

    problems = analyze(registry)
    print()
    for name, states in problems.items():
        if states:
            print(f"WARNING {name}: {', '.join(states)}")
    if not any(problems.values()):
        print("Workflow definition OK")
    return 0


if __name__ == "__main__":
    sys.exit(main())
