"""
Confirmation gates.

Risky steps (removing node_modules, deploying oversized services, deploying to
production, deleting functions or topics) ask a Confirmer instead of reading the
terminal directly. The policy is chosen per invocation:

    prompt  - ask on an interactive terminal, reject when stdin is not a TTY
    yes     - approve every gate (--yes, CONFIRM_POLICY=yes)
    no      - reject every gate (--no, CONFIRM_POLICY=no)
"""
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from firebase_devops.services.system.logger_service import get_logger

logger = get_logger(__name__)


class ConfirmationPolicy(str, Enum):
    PROMPT = 'prompt'
    AUTO_APPROVE = 'yes'
    AUTO_REJECT = 'no'


@dataclass(frozen=True)
class Decision:
    """
    Result of a confirmation gate.

    Attributes:
        proceed (bool): Whether the caller may continue
        reason (str): Why, for logs and error messages
    """
    proceed: bool
    reason: str


class Confirmer:
    def __init__(self, policy: ConfirmationPolicy = ConfirmationPolicy.PROMPT,
                 input_func: Callable[[str], str] = input,
                 is_interactive: Optional[Callable[[], bool]] = None):
        self.policy = ConfirmationPolicy(policy)
        self.input_func = input_func
        self.is_interactive = is_interactive or (lambda: sys.stdin.isatty())

    def confirm(self, question: str, default: bool = False) -> Decision:
        """Ask a yes/no question according to the policy."""
        if self.policy is ConfirmationPolicy.AUTO_APPROVE:
            logger.info(f"Auto-approved: {question}")
            return Decision(True, "auto-approved")
        if self.policy is ConfirmationPolicy.AUTO_REJECT:
            logger.warning(f"Auto-rejected: {question}")
            return Decision(False, "auto-rejected")
        if not self.is_interactive():
            logger.warning(f"Rejected (no interactive terminal): {question}")
            return Decision(False, "no interactive terminal; pass --yes to approve")

        suffix = ' (Y/n): ' if default else ' (y/N): '
        try:
            answer = self.input_func(question + suffix).strip().lower()
        except EOFError:
            answer = ''
        if not answer:
            return Decision(default, "default answer")
        if answer in ('y', 'yes'):
            return Decision(True, "operator approved")
        return Decision(False, "operator declined")
