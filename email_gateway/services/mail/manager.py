"""
Mail Account Manager

Account registry and adapter registry. Resolves which configured account
serves a call from an account name, a sender address or the default.
"""

from typing import Any, Dict, List, Optional, Type, TYPE_CHECKING
import logging

from .adapters import ADAPTERS
from .errors import AccountNotFound, ConfigurationMissing
from .interface import MailAccount, MailAdapter

if TYPE_CHECKING:
    from ...config import GatewayConfig

logger = logging.getLogger(__name__)


def mask_address(address: str) -> str:
    """alice@example.com -> al***@example.com"""
    if "@" not in address:
        return address[:2] + "***" if address else ""
    local, domain = address.rsplit("@", 1)
    return f"{local[:2]}***@{domain}"


class MailManager:
    """
    Manages mail accounts and the active adapter.

    Pure lookups over the configuration snapshot; the same hint always
    resolves to the same account.
    """

    def __init__(
        self,
        config: "GatewayConfig",
        adapter_classes: Optional[Dict[str, Type[MailAdapter]]] = None
    ):
        self.config = config
        self.accounts: Dict[str, MailAccount] = {
            name.lower(): account for name, account in config.accounts.items()
        }
        self.adapter_classes: Dict[str, Type[MailAdapter]] = dict(adapter_classes or ADAPTERS)
        self._adapter: Optional[MailAdapter] = None

    def register_adapter_type(self, adapter_type: str, adapter_class: Type[MailAdapter]) -> None:
        """Register an adapter implementation."""
        self.adapter_classes[adapter_type] = adapter_class
        self._adapter = None
        logger.info(f"✅ Registered mail adapter: {adapter_type}")

    @property
    def provider(self) -> str:
        return self.config.provider

    def get_adapter(self) -> MailAdapter:
        """Get or create the adapter for the configured provider."""
        if self._adapter is not None:
            return self._adapter

        if self.provider not in self.adapter_classes:
            available = ", ".join(self.adapter_classes) or "none"
            raise ConfigurationMissing(f"Unknown mail provider '{self.provider}'. Available: {available}")

        self._adapter = self.adapter_classes[self.provider](self.config)
        return self._adapter

    def resolve(self, hint: Optional[str] = None) -> MailAccount:
        """
        Resolve an account.

        Order: exact account name (case-insensitive), then the domain of an
        address hint via the routing table, then the default account. When
        the chosen name is not configured, the legacy account is used if
        one exists.

        Args:
            hint: Account name or email address (optional)

        Raises:
            ConfigurationMissing: No accounts and no legacy account at all
            AccountNotFound: The resolved name is not configured
        """
        if not self.accounts and self.config.legacy_account is None:
            raise ConfigurationMissing(
                "No mail accounts configured. Set QQ_SMTP_USER/QQ_SMTP_PASS, "
                "163_SMTP_USER/163_SMTP_PASS, EMAIL_ACCOUNTS or SMTP_USER/SMTP_PASS"
            )

        hint = (hint or "").strip()
        name = self.config.default_account

        if hint:
            account = self.accounts.get(hint.lower())
            if account:
                return account
            if "@" in hint:
                domain = hint.rsplit("@", 1)[1].strip(">").lower()
                name = self.config.domain_routes.get(domain, self.config.default_account)

        account = self.accounts.get(name)
        if account:
            return account

        if self.config.legacy_account is not None:
            logger.debug(f"No account named '{name}', using legacy account")
            return self.config.legacy_account

        target = f" (for '{hint}')" if hint else ""
        raise AccountNotFound(f"No mail account named '{name}' is configured{target}")

    def describe_accounts(self) -> List[Dict[str, Any]]:
        """Configured accounts with masked addresses."""
        return [
            {
                "name": name,
                "address": mask_address(account.address),
                "smtp": str(account.smtp),
                "imap": str(account.imap),
                "default": name == self.config.default_account,
            }
            for name, account in self.accounts.items()
        ]
