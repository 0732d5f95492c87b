"""
RevLedger - Access Controller

Every state-changing ledger operation must pass authorize() before it reads
or writes a record. The authority is looked up from the Distributor record,
never cached, so a call always checks against committed state.

Verifying that the caller really is who it claims (signatures, sessions) is
the identity source's job; this module only compares identities.
"""

import logging
import secrets
from enum import Enum

from ledger_errors import UnauthorizedError

logger = logging.getLogger(__name__)


class LedgerAction(Enum):
    """Operations gated by the authority check."""

    REGISTER_COLLECTION = "register_collection"
    SET_COLLECTION_ACTIVE = "set_collection_active"
    DISTRIBUTE_PAYMENT = "distribute_payment"
    DISTRIBUTE_BATCH = "distribute_batch"
    DISTRIBUTE_BATCH_BEST_EFFORT = "distribute_batch_best_effort"


def is_authority(caller: str | None, authority: str) -> bool:
    """Constant-time identity comparison."""
    if not caller or not isinstance(caller, str):
        return False
    return secrets.compare_digest(caller.encode("utf-8"), authority.encode("utf-8"))


def authorize(caller: str | None, authority: str, action: LedgerAction | str = "authorize") -> None:
    """
    Ensure the caller is the recorded authority.

    Args:
        caller: Identity supplied by the identity source
        authority: Identity stored on the Distributor record
        action: Operation being attempted (for the audit log)

    Raises:
        UnauthorizedError: caller is missing or differs from the authority
    """
    action_name = action.value if isinstance(action, LedgerAction) else action

    if not is_authority(caller, authority):
        logger.warning(
            "Access denied",
            extra={"action": action_name, "caller": caller},
        )
        raise UnauthorizedError(caller, action=action_name)

    logger.debug("Access granted", extra={"action": action_name})
