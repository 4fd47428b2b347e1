"""
System account protection.

Applied on top of the normal permission check: no grant, including *:*,
lets a caller modify or delete an account flagged is_system_account.
"""

import logging
from typing import Literal, Optional

from docadmin.core.errors import CannotDeleteSystemAccount, CannotModifySystemAccount
from docadmin.modules.rbac.models import User

logger = logging.getLogger(__name__)

Operation = Literal["modify", "delete"]


def ensure_not_system_account(user: User, operation: Operation = "modify", message: Optional[str] = None) -> User:
    if not user.is_system_account:
        return user
    logger.warning(f"Blocked {operation} of system account {user.id}")
    if operation == "delete":
        raise CannotDeleteSystemAccount(message)
    raise CannotModifySystemAccount(message)
