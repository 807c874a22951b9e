"""
One-time code generation.

Codes are capability tokens: drawn with the secrets module from an
alphabet without look-alike characters, and unique within their scope.
Uniqueness is checked before persisting and enforced by a unique index
on write, so two concurrent issuers can never hand out the same code.
"""

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass

from .exceptions import CodeCollision, CodeGenerationExhausted
from .ports import AccountRepository, CodeScope

logger = logging.getLogger(__name__)

# 32 symbols, no 0/O or 1/I
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


@dataclass
class CodeGenerator:
    """
    Produces collision-free one-time codes.

    At the default length of 12 a code carries 60 bits of entropy.
    """

    repository: AccountRepository
    length: int = 12
    max_attempts: int = 5

    def issue(self, scope: CodeScope, persist: Callable[[str], None]) -> str:
        """
        Generate a code and persist it through the callback.

        A CodeCollision raised by persist (a concurrent writer took the same
        code between the check and the write) counts as a failed attempt.

        Returns:
            The persisted code

        Raises:
            CodeGenerationExhausted: If no attempt could be persisted
        """
        for _ in range(self.max_attempts):
            code = self._random_code()
            if self.repository.code_exists(scope, code):
                logger.warning("Code collision in scope %s, regenerating", scope.value)
                continue
            try:
                persist(code)
            except CodeCollision:
                logger.warning("Code taken on write in scope %s, regenerating", scope.value)
                continue
            return code
        raise CodeGenerationExhausted(scope.value)

    def _random_code(self) -> str:
        return "".join(secrets.choice(CODE_ALPHABET) for _ in range(self.length))
