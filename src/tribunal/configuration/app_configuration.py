from __future__ import annotations
from pathlib import Path
import fcntl
from typing import Any, Dict
import yaml

from tribunal.configuration.voting_settings import VotingSettings
from tribunal.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    The class caches the contents of ``./config/app_config.yml``, exposes
    dictionary-like lookups and wraps the ``voting`` section in
    :class:`VotingSettings`. Reads take a shared fcntl lock so an editor
    saving the file mid-read cannot hand us half a document.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.error("[APP CONFIGURATION] Config file %s not found.", self.config_path)
            return {}
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            logger.error("[APP CONFIGURATION] Config %s is not a mapping; ignoring it.", self.config_path)
            return {}
        return data

    def reload(self) -> Dict[str, Any]:
        """Re-read the YAML file, replace the cache and return the new mapping.

        An empty dict is cached (and returned) when the file is missing or
        cannot be parsed.
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """The cached configuration mapping. Callers must not mutate it."""
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    @property
    def voting(self) -> VotingSettings:
        """Return the voting configuration wrapped in :class:`VotingSettings`."""
        settings = self._data.get("voting", {})
        if not isinstance(settings, dict):
            settings = {}
        return VotingSettings(settings)

    @property
    def database_path(self) -> Path:
        """Location of the SQLite database file, relative paths resolved from the CWD."""
        return Path(str(self._data.get("database_path") or "./data/tribunal.db")).resolve()


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
