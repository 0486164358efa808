"""Domain enumerations for the automation engine.

Enums represent fixed sets of domain values (workflow roles, built-in
node kinds).
"""

from enum import Enum


class WorkflowRole(str, Enum):
    """Per-workflow role. Roles form a total order by rank.

    viewer < editor < approver < admin
    """

    VIEWER = "viewer"
    EDITOR = "editor"
    APPROVER = "approver"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def satisfies(self, required: "WorkflowRole") -> bool:
        """Return whether this role is at least as privileged as required."""
        return self.rank >= required.rank

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid role values as strings, lowest rank first."""
        return [role.value for role in cls]


_ROLE_RANK = {
    WorkflowRole.VIEWER: 0,
    WorkflowRole.EDITOR: 1,
    WorkflowRole.APPROVER: 2,
    WorkflowRole.ADMIN: 3,
}


class NodeType(str, Enum):
    """Node kinds the engine knows out of the box.

    trigger, condition, ab_test and variable are interpreted by built-in
    handlers; the remaining kinds are delegated to handlers registered by
    collaborating modules. Collaborators may register further kinds; a
    node's type is therefore stored as a plain string.
    """

    TRIGGER = "trigger"
    CONDITION = "condition"
    AB_TEST = "ab_test"
    VARIABLE = "variable"
    ACTION = "action"
    BILLING = "billing"
    NOTIFICATION = "notification"
    TAG = "tag"
    AI_AGENT = "ai_agent"

    @classmethod
    def values(cls) -> list[str]:
        """Return all built-in node type strings."""
        return [kind.value for kind in cls]


BUILTIN_CONTROL_TYPES = frozenset(
    {
        NodeType.TRIGGER.value,
        NodeType.CONDITION.value,
        NodeType.AB_TEST.value,
        NodeType.VARIABLE.value,
    }
)

# Reserved branch labels on edges.
BRANCH_TRUE = "true"
BRANCH_FALSE = "false"
BRANCH_ERROR = "error"
