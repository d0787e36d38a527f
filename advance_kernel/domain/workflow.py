"""
Canonical workflow types (``advance_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for role-gated state machines.  A ``Workflow`` is a
declarative table of ``Transition`` rows; each row names the source and
destination states, the action label, and the roles allowed to fire it.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/`` or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* ``terminal_states`` have no outgoing transitions.
* At most one transition per (from_state, to_state) pair.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    Contract: frozen.  ``allowed_roles`` is the complete set of actor roles
    that may fire this transition; an empty set means nobody can.
    """
    from_state: str
    to_state: str
    action: str
    allowed_roles: frozenset[str] = frozenset()

    def permits(self, role: str) -> bool:
        return role in self.allowed_roles


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    Guarantees: ``initial_state`` is a member of ``states``; every state in
    ``terminal_states`` has no outgoing transitions.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        known = set(self.states)
        if self.initial_state not in known:
            raise ValueError(
                f"Workflow {self.name}: initial_state {self.initial_state!r} "
                f"is not a declared state"
            )
        seen: set[tuple[str, str]] = set()
        for t in self.transitions:
            if t.from_state not in known or t.to_state not in known:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.from_state} -> "
                    f"{t.to_state} references an undeclared state"
                )
            if (t.from_state, t.to_state) in seen:
                raise ValueError(
                    f"Workflow {self.name}: duplicate transition "
                    f"{t.from_state} -> {t.to_state}"
                )
            seen.add((t.from_state, t.to_state))
        for state in self.terminal_states:
            if any(t.from_state == state for t in self.transitions):
                raise ValueError(
                    f"Workflow {self.name}: terminal state {state!r} "
                    f"has outgoing transitions"
                )

    def transitions_from(self, state: str) -> tuple[Transition, ...]:
        """All rows leaving ``state``, in declaration order."""
        return tuple(t for t in self.transitions if t.from_state == state)

    def find(self, from_state: str, to_state: str) -> Transition | None:
        """The row for (from_state, to_state), or None."""
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None
