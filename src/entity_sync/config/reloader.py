"""
Background config reload.

Polls the config location and hands changed dataset definitions to the
service. URL locations may require an OAuth client-credentials token.
"""

import json
import logging
import threading
import time
from typing import Any, Callable, Dict, Optional

try:
    import requests
except ImportError:
    requests = None

from ..core.exceptions import ConfigError, EntitySyncError
from .config_loader import DEFAULT_REFRESH_INTERVAL, SyncConfig


logger = logging.getLogger(__name__)

# refresh this long before the token actually expires
TOKEN_EXPIRY_MARGIN = 10


class OAuthTokenProvider:
    """
    Client-credentials token source with caching.

    Attributes:
        auth_endpoint: Token endpoint URL
        client_id: OAuth client id
        client_secret: OAuth client secret
        audience: Requested audience
        grant_type: Grant type, client_credentials by default
    """

    def __init__(
        self,
        auth_endpoint: str,
        client_id: str,
        client_secret: str,
        audience: str = "",
        grant_type: str = "client_credentials",
        timeout: int = 30,
        clock: Callable[[], float] = time.time,
    ):
        if requests is None:
            raise ImportError(
                "requests library is required for OAuthTokenProvider. "
                "Install with: pip install requests"
            )
        self.auth_endpoint = auth_endpoint
        self.client_id = client_id
        self.client_secret = client_secret
        self.audience = audience
        self.grant_type = grant_type
        self.timeout = timeout
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = threading.Lock()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OAuthTokenProvider":
        missing = [k for k in ("auth_endpoint", "client_id", "client_secret") if not data.get(k)]
        if missing:
            raise ConfigError(f"Missing OAuth settings: {', '.join(missing)}")
        return cls(
            auth_endpoint=data["auth_endpoint"],
            client_id=data["client_id"],
            client_secret=data["client_secret"],
            audience=data.get("audience", ""),
            grant_type=data.get("grant_type") or "client_credentials",
        )

    def __call__(self) -> str:
        with self._lock:
            if self._token and self._clock() < self._expires_at:
                return self._token
            self._token, expires_in = self._request_token()
            self._expires_at = self._clock() + expires_in - TOKEN_EXPIRY_MARGIN
            return self._token

    def _request_token(self):
        payload = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "audience": self.audience,
            "grant_type": self.grant_type,
        }
        try:
            response = requests.post(self.auth_endpoint, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ConfigError(f"Failed to get access token from {self.auth_endpoint}: {e}") from e

        token = body.get("access_token")
        if not token:
            raise ConfigError(f"No access_token in response from {self.auth_endpoint}")
        logger.debug(f"Got access token, expires in {body.get('expires_in')}s")
        return token, int(body.get("expires_in") or 0)


def _fingerprint(config: SyncConfig) -> str:
    return json.dumps(config.config.get("dataset_definitions") or [], sort_keys=True, default=str)


class ConfigReloader:
    """
    Polls a config location and reports changed dataset definitions.

    Example:
        >>> reloader = ConfigReloader(path, service.update_configuration, interval=60)
        >>> reloader.start()
        >>> reloader.stop()
    """

    def __init__(
        self,
        location: str,
        on_change: Callable[[SyncConfig], None],
        interval: int = DEFAULT_REFRESH_INTERVAL,
        token_provider: Optional[Callable[[], str]] = None,
        initial: Optional[SyncConfig] = None,
    ):
        self.location = location
        self.on_change = on_change
        self.interval = interval
        self.token_provider = token_provider
        self._last = _fingerprint(initial) if initial is not None else None
        self._shutdown_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def check(self) -> bool:
        """
        Load the config once and call on_change if the datasets changed.

        Returns:
            True if on_change was called
        """
        config = SyncConfig(self.location, token_provider=self.token_provider)
        fingerprint = _fingerprint(config)
        if fingerprint == self._last:
            logger.debug("Config unchanged")
            return False
        logger.info(f"Dataset definitions changed in {self.location}")
        self.on_change(config)
        self._last = fingerprint
        return True

    def _run(self) -> None:
        logger.info(f"Config reloader started, polling every {self.interval}s")
        while not self._shutdown_event.wait(self.interval):
            try:
                self.check()
            except (EntitySyncError, OSError) as e:
                logger.error(f"Config reload failed, keeping current config: {e}")
        logger.info("Config reloader stopped")

    def start(self) -> None:
        if self._thread is not None:
            return
        self._shutdown_event.clear()
        self._thread = threading.Thread(target=self._run, name="config-reloader", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self._shutdown_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
