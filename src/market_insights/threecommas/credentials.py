"""Key pairs for the 3commas API and request signing."""

from __future__ import annotations

import hashlib
import hmac

from pydantic import BaseModel, ConfigDict, SecretStr

from market_insights.core.config import ThreeCommasConfig
from market_insights.core.exceptions import SigningOrCredentialError
from market_insights.core.models import Privilege


def sign(query_string: str, secret: str) -> str:
    """HMAC-SHA256 of the percent-encoded query string, as lowercase hex.

    An empty query string is signed as-is.
    """
    if not secret:
        raise SigningOrCredentialError("Cannot sign with an empty secret")
    return hmac.new(
        secret.encode("utf-8"), query_string.encode("utf-8"), hashlib.sha256
    ).hexdigest()


class CredentialPair(BaseModel):
    """One API key and its signing secret."""

    model_config = ConfigDict(frozen=True)

    api_key: str
    secret: SecretStr

    def sign(self, query_string: str) -> str:
        return sign(query_string, self.secret.get_secret_value())


class Credentials(BaseModel):
    """Read-only and trading key pairs.

    READ operations use the read-only pair, WRITE operations the trading
    pair. The two are never substituted for each other.
    """

    model_config = ConfigDict(frozen=True)

    read_only: CredentialPair | None = None
    trading: CredentialPair | None = None

    @classmethod
    def from_config(cls, config: ThreeCommasConfig) -> Credentials:
        return cls(
            read_only=_pair(config.read_only_key, config.read_only_secret),
            trading=_pair(config.trading_key, config.trading_secret),
        )

    def for_privilege(self, privilege: Privilege) -> CredentialPair:
        """Return the pair for ``privilege``.

        Raises:
            SigningOrCredentialError: that pair is not configured.
        """
        pair = self.trading if privilege == Privilege.WRITE else self.read_only
        if pair is None:
            raise SigningOrCredentialError(
                f"No {privilege.value} credentials configured for 3commas",
                context={"privilege": privilege.value},
            )
        return pair


def _pair(key: SecretStr | None, secret: SecretStr | None) -> CredentialPair | None:
    # Both halves must be non-empty, otherwise the pair counts as missing.
    api_key = key.get_secret_value().strip() if key else ""
    api_secret = secret.get_secret_value().strip() if secret else ""
    if not api_key or not api_secret:
        return None
    return CredentialPair(api_key=api_key, secret=SecretStr(api_secret))
