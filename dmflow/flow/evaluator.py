"""
Condition Evaluator - deterministic evaluation of CONDITION nodes against
the execution context.
"""
import logging
from typing import Callable, Dict

from ..models.execution import ExecutionContext
from ..models.flow import ConditionType, NodeData
from .context import context_has_email, context_has_phone, context_matches_keyword

logger = logging.getLogger(__name__)


class ConditionEvaluator:
    """
    Evaluates condition node predicates.

    Supported condition types:
    - has_email: a collected email containing "@"
    - has_phone: a collected phone of at least 10 characters
    - keyword_match: last user message contains one of the node keywords
    - user_replied: the sender has sent any message
    - custom_field: the custom field named by the node value is truthy

    Unknown condition types evaluate to False.
    """

    CONDITIONS: Dict[str, Callable[[NodeData, ExecutionContext], bool]] = {
        ConditionType.HAS_EMAIL.value: lambda data, ctx: context_has_email(ctx),
        ConditionType.HAS_PHONE.value: lambda data, ctx: context_has_phone(ctx),
        ConditionType.KEYWORD_MATCH.value: lambda data, ctx: (
            context_matches_keyword(ctx, data.keywords) if data.keywords else False
        ),
        ConditionType.USER_REPLIED.value: lambda data, ctx: bool(ctx.last_user_message),
        ConditionType.CUSTOM_FIELD.value: lambda data, ctx: bool(
            ctx.custom_fields.get(str(data.value or ""))
        ),
    }

    def evaluate(self, data: NodeData, context: ExecutionContext) -> bool:
        check = self.CONDITIONS.get(data.condition_type or "")
        if check is None:
            logger.warning(f"Unknown condition type: {data.condition_type}")
            return False
        return check(data, context)
