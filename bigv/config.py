"""Provider configuration resolved from CLI flags and BIGV_* environment variables."""

import os
from dataclasses import dataclass

from bigv.provisioning.client import DEFAULT_API_URL
from bigv.provisioning.session import DEFAULT_AUTH_URL
from bigv.provisioning.types import DEFAULT_GROUP, DEFAULT_ZONE


class ConfigError(ValueError):
    pass


@dataclass
class ProviderConfig:
    account: str
    user: str
    password: str
    group: str = DEFAULT_GROUP
    zone: str = DEFAULT_ZONE
    api_url: str = DEFAULT_API_URL
    auth_url: str = DEFAULT_AUTH_URL

    @classmethod
    def resolve(cls, account=None, user=None, password=None, group=None, zone=None, api_url=None, auth_url=None, environ=None):
        """Build a config, preferring explicit values over the environment.

        Raises:
            ConfigError: account, user or password is missing from both.
        """
        env = os.environ if environ is None else environ

        def _pick(value, var, default=None, name=None, flag=True):
            value = value or env.get(var) or default
            if value is None:
                hint = f"Use --{name} or set {var}." if flag else f"Set {var}."
                raise ConfigError(f"BigV {name} required. {hint}")
            return value

        return cls(
            account=_pick(account, "BIGV_ACCOUNT", name="account"),
            user=_pick(user, "BIGV_USER", name="user"),
            password=_pick(password, "BIGV_PASSWORD", name="password", flag=False),
            group=_pick(group, "BIGV_GROUP", DEFAULT_GROUP),
            zone=_pick(zone, "BIGV_ZONE", DEFAULT_ZONE),
            api_url=_pick(api_url, "BIGV_API_URL", DEFAULT_API_URL),
            auth_url=_pick(auth_url, "BIGV_AUTH_URL", DEFAULT_AUTH_URL),
        )
