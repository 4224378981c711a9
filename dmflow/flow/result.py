"""
Node Result - outcome of executing a single flow node
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class NodeOutcome(str, Enum):
    """What the traversal loop should do after a node"""
    CONTINUE = "continue"    # follow outgoing edges
    BRANCH = "branch"        # condition node, follow the selected handle
    SUSPEND = "suspend"      # parked (delay ticket or waiting on input)
    FAILED = "failed"        # execution was marked failed


@dataclass
class NodeResult:
    """Result of a node execution"""
    outcome: NodeOutcome = NodeOutcome.CONTINUE
    condition_result: Optional[bool] = None
    error: Optional[str] = None

    @property
    def should_continue(self) -> bool:
        return self.outcome in (NodeOutcome.CONTINUE, NodeOutcome.BRANCH)


def continue_result() -> NodeResult:
    return NodeResult(outcome=NodeOutcome.CONTINUE)


def branch_result(condition_result: bool) -> NodeResult:
    return NodeResult(outcome=NodeOutcome.BRANCH, condition_result=condition_result)


def suspend_result() -> NodeResult:
    return NodeResult(outcome=NodeOutcome.SUSPEND)


def failed_result(error: str) -> NodeResult:
    return NodeResult(outcome=NodeOutcome.FAILED, error=error)
