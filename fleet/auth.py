"""Owner-or-admin gate for mutating API calls. Stateless, one check per request."""
from __future__ import annotations

import hmac
from typing import Optional

from .db import BotConfig
from .errors import Forbidden


def is_admin(password: Optional[str], admin_secret: str) -> bool:
    if not password or not admin_secret:
        return False
    return hmac.compare_digest(password.encode(), admin_secret.encode())


def authorize(
    config: BotConfig,
    *,
    admin_secret: str,
    owner: Optional[str] = None,
    admin_password: Optional[str] = None,
) -> None:
    """Raise Forbidden unless the caller is the bot's owner or knows the admin password."""
    if is_admin(admin_password, admin_secret):
        return
    if owner is not None and owner == config.owner:
        return
    raise Forbidden()
