import json
import logging
from typing import Optional, Tuple

from app.logic.workflow_types import ApproverDirectory, FlowStep, UserRef

logger = logging.getLogger(__name__)


def parse_approver_ids(raw) -> Optional[Tuple[int, ...]]:
    """Parse the stored approver id list.

    Accepts the JSON text persisted on the flow step or an already decoded
    list. Anything malformed is logged and treated as absent so the step
    falls back to role based eligibility.
    """
    if raw is None or raw == "":
        return None
    value = raw
    if isinstance(raw, str):
        try:
            value = json.loads(raw)
        except ValueError as e:
            logger.warning(f"Error parsing approver_ids {raw!r}: {e}")
            return None
    if not isinstance(value, (list, tuple)):
        logger.warning(f"approver_ids is not a list: {raw!r}")
        return None
    try:
        ids = tuple(int(v) for v in value)
    except (TypeError, ValueError) as e:
        logger.warning(f"approver_ids contains non integer ids {raw!r}: {e}")
        return None
    return ids or None


def resolve_approvers(step: FlowStep, directory: ApproverDirectory) -> Tuple[UserRef, ...]:
    """Users eligible to vote on a step.

    An explicit approver list wins over the role (listed order, duplicates
    and unknown ids dropped). Otherwise every company user holding the
    required role, ordered by id.
    """
    if step.approver_ids:
        resolved = []
        seen = set()
        for user_id in step.approver_ids:
            if user_id in seen:
                continue
            seen.add(user_id)
            user = directory.get(user_id)
            if user is not None:
                resolved.append(user)
        return tuple(resolved)

    return tuple(sorted(
        (u for u in directory.company_users if u.role == step.required_role),
        key=lambda u: u.id
    ))
