"""Engine configuration: JSON file with environment overrides."""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def default_home() -> Path:
    return Path.home() / ".crm-automation"


RULES_FILE = "rules.json"
ROUND_ROBIN_FILE = "round_robin.json"
EDGE_STATE_FILE = "edge_state.json"
LEDGER_FILE = "ledger.json"
DIRECTORY_FILE = "directory.json"


@dataclass
class EngineConfig:
    """Runtime settings for the rule engine and its collaborators."""

    # Where rules, cursors, edge state and the idempotency ledger live
    data_dir: str = field(default_factory=lambda: str(default_home() / "data"))
    log_level: str = "INFO"

    # Outbound webhooks
    webhook_timeout: float = 10.0
    webhook_retries: int = 3
    webhook_backoff: float = 2.0  # seconds, doubled per attempt
    user_agent: str = "crm-automation/1.0"

    # LEAD_UNTOUCHED sweep
    idle_scan_minutes: int = 15

    ledger_max_entries: int = 10000
    edge_state_max_entries: int = 100000

    updated_at: datetime = field(default_factory=datetime.now)

    def path_for(self, filename: str) -> Path:
        return Path(self.data_dir).expanduser() / filename


# env var -> (field, converter)
ENV_OVERRIDES = {
    "CRM_AUTOMATION_DATA_DIR": ("data_dir", str),
    "CRM_AUTOMATION_LOG_LEVEL": ("log_level", str),
    "CRM_AUTOMATION_WEBHOOK_TIMEOUT": ("webhook_timeout", float),
    "CRM_AUTOMATION_WEBHOOK_RETRIES": ("webhook_retries", int),
    "CRM_AUTOMATION_IDLE_SCAN_MINUTES": ("idle_scan_minutes", int),
}


class EngineConfigManager:
    """Load and persist engine configuration.

    Values come from defaults, then the JSON config file, then
    ``CRM_AUTOMATION_*`` environment variables.
    """

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or default_home() / "config.json"
        self.config = self._load_config()
        self._apply_env()

    def _load_config(self) -> EngineConfig:
        """Load configuration from file."""
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    data = json.load(f)
                defaults = EngineConfig()
                return EngineConfig(
                    data_dir=data.get("data_dir", defaults.data_dir),
                    log_level=data.get("log_level", defaults.log_level),
                    webhook_timeout=float(data.get("webhook_timeout", defaults.webhook_timeout)),
                    webhook_retries=int(data.get("webhook_retries", defaults.webhook_retries)),
                    webhook_backoff=float(data.get("webhook_backoff", defaults.webhook_backoff)),
                    user_agent=data.get("user_agent", defaults.user_agent),
                    idle_scan_minutes=int(data.get("idle_scan_minutes", defaults.idle_scan_minutes)),
                    ledger_max_entries=int(data.get("ledger_max_entries", defaults.ledger_max_entries)),
                    edge_state_max_entries=int(data.get("edge_state_max_entries",
                                                        defaults.edge_state_max_entries)),
                )
            except (OSError, ValueError, TypeError) as e:
                logger.error(f"Error loading engine config: {e}")

        return EngineConfig()

    def _apply_env(self):
        for var, (name, convert) in ENV_OVERRIDES.items():
            raw = os.getenv(var)
            if raw is None or raw == "":
                continue
            try:
                setattr(self.config, name, convert(raw))
            except ValueError:
                logger.warning(f"Ignoring invalid {var}={raw!r}")

    def save_config(self):
        """Save configuration to file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self.config.updated_at = datetime.now()
        data = asdict(self.config)
        data["updated_at"] = self.config.updated_at.isoformat()
        with open(self.config_path, 'w') as f:
            json.dump(data, f, indent=2)

    def set_data_dir(self, data_dir: str):
        self.config.data_dir = data_dir
        self.save_config()
