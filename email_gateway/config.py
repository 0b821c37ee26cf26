"""
Email Gateway configuration.

Builds one immutable GatewayConfig at process start. Everything else
receives it by reference; adapters never read the environment.

Usage:
    from email_gateway.config import load_config

    config = load_config()               # from os.environ
    config = load_config({"EMAIL_PROVIDER": "gmail", ...})
"""

import json
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from . import __version__
from .services.mail.errors import ConfigurationMissing
from .services.mail.interface import Credentials, Endpoint, MailAccount

logger = logging.getLogger(__name__)

PROVIDERS = ("smtp", "gmail")
DEFAULT_ACCOUNT_NAME = "qq"
DEFAULT_ID_HOSTS = ("163.com",)
DEFAULT_TIMEOUT = 30

# Built-in regional accounts: name -> (env prefix, smtp host, imap host, domain)
ACCOUNT_PRESETS: Dict[str, Tuple[str, str, str, str]] = {
    "qq": ("QQ", "smtp.qq.com", "imap.qq.com", "qq.com"),
    "163": ("163", "smtp.163.com", "imap.163.com", "163.com"),
}

GMAIL_ENV_HINT = "GMAIL_CLIENT_ID, GMAIL_CLIENT_SECRET, and GMAIL_REFRESH_TOKEN"


@dataclass(frozen=True)
class GmailSettings:
    """OAuth client credentials for the Gmail API."""
    client_id: str = ""
    client_secret: str = field(default="", repr=False)
    refresh_token: str = field(default="", repr=False)
    access_token: Optional[str] = field(default=None, repr=False)

    @property
    def complete(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)


@dataclass(frozen=True)
class GatewayConfig:
    """Read-only configuration snapshot."""
    provider: str = "smtp"
    accounts: Mapping[str, MailAccount] = field(default_factory=dict)
    default_account: str = DEFAULT_ACCOUNT_NAME
    default_from: Optional[str] = None
    domain_routes: Mapping[str, str] = field(default_factory=dict)
    legacy_account: Optional[MailAccount] = None
    gmail: GmailSettings = field(default_factory=GmailSettings)
    id_hosts: Tuple[str, ...] = DEFAULT_ID_HOSTS
    client_id_fields: Mapping[str, str] = field(default_factory=dict)
    timeout: int = DEFAULT_TIMEOUT
    log_level: str = "INFO"
    transport: str = "stdio"
    host: str = "0.0.0.0"
    port: int = 8000


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() not in ("false", "0", "no", "off")


def _int(value: Optional[str], default: int, name: str) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationMissing(f"{name} must be an integer, got {value!r}")


def _split(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(",") if part.strip())


def needs_id_handshake(host: str, id_hosts: Tuple[str, ...]) -> bool:
    """True when the IMAP host matches one of the handshake host suffixes."""
    host = (host or "").lower()
    return any(host == suffix or host.endswith("." + suffix) for suffix in id_hosts)


def _endpoint(host: str, port: int, secure: bool, id_hosts: Tuple[str, ...]) -> Endpoint:
    return Endpoint(
        host=host,
        port=port,
        secure=secure,
        requires_id_handshake=needs_id_handshake(host, id_hosts),
    )


def _account_from_env(
    name: str,
    prefix: str,
    env: Mapping[str, str],
    id_hosts: Tuple[str, ...],
    smtp_host: str = "",
    imap_host: str = "",
) -> Optional[MailAccount]:
    """Build a named account from <PREFIX>_SMTP_* / <PREFIX>_IMAP_* variables."""
    smtp_user = env.get(f"{prefix}_SMTP_USER", "")
    smtp_pass = env.get(f"{prefix}_SMTP_PASS", "")
    smtp_host = env.get(f"{prefix}_SMTP_HOST") or smtp_host
    imap_host = env.get(f"{prefix}_IMAP_HOST") or imap_host

    if not (smtp_user and smtp_pass and smtp_host and imap_host):
        if any(key.startswith(f"{prefix}_") for key in env):
            logger.warning(f"⚠️ Skipping incomplete mail account '{name}' (user, password and hosts are required)")
        return None

    return MailAccount(
        name=name,
        smtp=_endpoint(
            smtp_host,
            _int(env.get(f"{prefix}_SMTP_PORT"), 465, f"{prefix}_SMTP_PORT"),
            _flag(env.get(f"{prefix}_SMTP_SECURE"), True),
            id_hosts,
        ),
        smtp_credentials=Credentials(smtp_user, smtp_pass),
        imap=_endpoint(
            imap_host,
            _int(env.get(f"{prefix}_IMAP_PORT"), 993, f"{prefix}_IMAP_PORT"),
            _flag(env.get(f"{prefix}_IMAP_SECURE"), True),
            id_hosts,
        ),
        imap_credentials=Credentials(
            env.get(f"{prefix}_IMAP_USER") or smtp_user,
            env.get(f"{prefix}_IMAP_PASS") or smtp_pass,
        ),
    )


def _accounts_from_file(path: Path, id_hosts: Tuple[str, ...]) -> Dict[str, MailAccount]:
    """Load accounts from a JSON file: {"accounts": {name: {"smtp": {...}, "imap": {...}}}}."""
    try:
        data = json.loads(path.read_text())
    except (OSError, ValueError) as e:
        raise ConfigurationMissing(f"Cannot read mail accounts file {path}: {e}")

    accounts = {}
    for name, entry in data.get("accounts", {}).items():
        smtp = entry.get("smtp", {})
        imap = entry.get("imap", {})
        smtp_user = smtp.get("user", "")
        smtp_pass = smtp.get("pass", "")
        if not (smtp.get("host") and imap.get("host")):
            logger.warning(f"⚠️ Skipping mail account '{name}' from {path}: host missing")
            continue
        key = name.lower()
        accounts[key] = MailAccount(
            name=key,
            smtp=_endpoint(smtp["host"], int(smtp.get("port", 465)), bool(smtp.get("secure", True)), id_hosts),
            smtp_credentials=Credentials(smtp_user, smtp_pass),
            imap=_endpoint(imap["host"], int(imap.get("port", 993)), bool(imap.get("secure", True)), id_hosts),
            imap_credentials=Credentials(imap.get("user") or smtp_user, imap.get("pass") or smtp_pass),
        )
    logger.info(f"✅ Loaded {len(accounts)} mail accounts from {path}")
    return accounts


def _legacy_account(env: Mapping[str, str], id_hosts: Tuple[str, ...]) -> Optional[MailAccount]:
    """Single flat SMTP_*/IMAP_* account used when no named account applies."""
    smtp_user = env.get("SMTP_USER", "")
    imap_user = env.get("IMAP_USER") or smtp_user
    if not (smtp_user or imap_user):
        return None

    return MailAccount(
        name="legacy",
        smtp=_endpoint(
            env.get("SMTP_HOST") or "smtp.gmail.com",
            _int(env.get("SMTP_PORT"), 587, "SMTP_PORT"),
            env.get("SMTP_SECURE", "").lower() == "true",
            id_hosts,
        ),
        smtp_credentials=Credentials(smtp_user, env.get("SMTP_PASS", "")),
        imap=_endpoint(
            env.get("IMAP_HOST") or "imap.qq.com",
            _int(env.get("IMAP_PORT"), 993, "IMAP_PORT"),
            env.get("IMAP_SECURE") != "false",
            id_hosts,
        ),
        imap_credentials=Credentials(imap_user, env.get("IMAP_PASS") or env.get("SMTP_PASS", "")),
    )


def _domain_routes(accounts: Mapping[str, MailAccount], raw: Optional[str]) -> Dict[str, str]:
    routes = {domain: name for name, (_, _, _, domain) in ACCOUNT_PRESETS.items()}
    for name, account in accounts.items():
        if "@" in account.address:
            routes.setdefault(account.address.rsplit("@", 1)[1].lower(), name)
    for item in _split(raw):
        domain, sep, name = item.partition("=")
        if not sep or not domain.strip() or not name.strip():
            raise ConfigurationMissing(f"EMAIL_DOMAIN_ROUTES entry must be domain=account, got {item!r}")
        routes[domain.strip().lower()] = name.strip().lower()
    return routes


def load_config(
    environ: Optional[Mapping[str, str]] = None,
    accounts_file: Optional[Path] = None,
) -> GatewayConfig:
    """
    Build the configuration snapshot.

    Args:
        environ: Variables to read (default: os.environ)
        accounts_file: Optional JSON accounts file (default: MAIL_ACCOUNTS_FILE)

    Returns:
        GatewayConfig

    Raises:
        ConfigurationMissing: Unknown provider or malformed values
    """
    env = dict(os.environ if environ is None else environ)

    provider = (env.get("EMAIL_PROVIDER") or "smtp").strip().lower()
    if provider not in PROVIDERS:
        raise ConfigurationMissing(f"EMAIL_PROVIDER must be one of {', '.join(PROVIDERS)}, got {provider!r}")

    id_hosts = _split(env.get("IMAP_ID_HOSTS")) or DEFAULT_ID_HOSTS

    accounts: Dict[str, MailAccount] = {}
    for name, (prefix, smtp_host, imap_host, _) in ACCOUNT_PRESETS.items():
        account = _account_from_env(name, prefix, env, id_hosts, smtp_host, imap_host)
        if account:
            accounts[name] = account

    for name in _split(env.get("EMAIL_ACCOUNTS")):
        key = name.lower()
        account = _account_from_env(key, name.upper(), env, id_hosts)
        if account:
            accounts[key] = account

    path = accounts_file or (Path(env["MAIL_ACCOUNTS_FILE"]) if env.get("MAIL_ACCOUNTS_FILE") else None)
    if path:
        accounts.update(_accounts_from_file(path, id_hosts))

    config = GatewayConfig(
        provider=provider,
        accounts=accounts,
        default_account=(env.get("DEFAULT_EMAIL_ACCOUNT") or DEFAULT_ACCOUNT_NAME).lower(),
        default_from=env.get("DEFAULT_FROM_EMAIL") or None,
        domain_routes=_domain_routes(accounts, env.get("EMAIL_DOMAIN_ROUTES")),
        legacy_account=_legacy_account(env, id_hosts),
        gmail=GmailSettings(
            client_id=env.get("GMAIL_CLIENT_ID", ""),
            client_secret=env.get("GMAIL_CLIENT_SECRET", ""),
            refresh_token=env.get("GMAIL_REFRESH_TOKEN", ""),
            access_token=env.get("GMAIL_ACCESS_TOKEN") or None,
        ),
        id_hosts=id_hosts,
        client_id_fields={
            "name": "email-gateway",
            "version": __version__,
            "vendor": "email-gateway-client",
        },
        timeout=_int(env.get("MAIL_TIMEOUT"), DEFAULT_TIMEOUT, "MAIL_TIMEOUT"),
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        transport=(env.get("MCP_TRANSPORT") or "stdio").lower(),
        host=env.get("MCP_HOST") or "0.0.0.0",
        port=_int(env.get("MCP_PORT"), 8000, "MCP_PORT"),
    )
    logger.info(f"✅ Mail provider: {config.provider} ({len(accounts)} named accounts)")
    return config


def configure_logging(level: str = "INFO") -> None:
    """Send logs to stderr; stdout carries the stdio tool protocol."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
