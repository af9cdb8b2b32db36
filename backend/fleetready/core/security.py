import hmac
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional

from fleetready.core.config import parse_token_list
from fleetready.core.secrets import SecretStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    subject: str


class TokenValidator(ABC):
    @abstractmethod
    def validate(self, token: str) -> Optional[Principal]:
        """Return the caller for a valid token, None otherwise."""
        raise NotImplementedError


class StaticTokenValidator(TokenValidator):
    """
    Accepts a fixed set of tokens. Entries may be "subject:token"; bare tokens
    map to the subject "api".
    """

    def __init__(self, tokens: Iterable[str] = ()):
        self._tokens: dict[str, str] = {}
        self.replace(tokens)

    @classmethod
    def from_secret_store(cls, store: SecretStore, key: str) -> "StaticTokenValidator":
        validator = cls(parse_token_list(store.get(key)))
        store.subscribe(key, lambda _k, value: validator.replace(parse_token_list(value)))
        return validator

    def replace(self, tokens: Iterable[str]) -> None:
        table: dict[str, str] = {}
        for entry in tokens:
            subject, sep, token = entry.partition(":")
            if not sep:
                subject, token = "api", entry
            table[token] = subject
        self._tokens = table
        logger.debug("Token validator loaded %d token(s)", len(table))

    def validate(self, token: str) -> Optional[Principal]:
        for known, subject in self._tokens.items():
            if hmac.compare_digest(known, token):
                return Principal(subject=subject)
        return None
