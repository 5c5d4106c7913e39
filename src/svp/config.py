"""Configuration management for svp: server profiles and provisioner settings."""

import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

import keyring
import yaml
from keyring.errors import KeyringError

from svp.connector.ssh import SSHConfig
from svp.errors import SVPError


@dataclass
class ProvisionerSettings:
    """Filesystem layout of the provisioned server."""

    sites_available: str = "/etc/nginx/sites-available"
    sites_enabled: str = "/etc/nginx/sites-enabled"
    snippets_dir: str = "/etc/nginx/snippets"
    webroot_base: str = "/var/www"
    docroot_subdir: str = "web"
    letsencrypt_live: str = "/etc/letsencrypt/live"
    backup_dir: str = "/etc/nginx/backups"
    php_version: str = "8.4"
    php_etc_dir: str = "/etc/php"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProvisionerSettings":
        """Build settings from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: str(v) for k, v in data.items() if k in known and v is not None})

    def vhost_path(self, domain: str) -> str:
        return f"{self.sites_available}/{domain}.conf"

    def site_dir(self, domain: str) -> str:
        return f"{self.webroot_base}/{domain}"

    def docroot(self, domain: str) -> str:
        if not self.docroot_subdir:
            return self.site_dir(domain)
        return f"{self.site_dir(domain)}/{self.docroot_subdir}"

    def htpasswd_path(self, domain: str) -> str:
        return f"{self.site_dir(domain)}/.htpasswd"

    def cert_path(self, domain: str) -> str:
        return f"{self.letsencrypt_live}/{domain}/fullchain.pem"

    def php_pool_path(self, domain: str, php_version: str) -> str:
        return f"{self.php_etc_dir}/{php_version}/fpm/pool.d/{domain}.conf"


class ConfigManager:
    """Manages server profiles and settings stored as YAML, with keyring for passwords."""

    def __init__(self, config_dir: Path | None = None) -> None:
        if config_dir is None:
            # Check for environment variable override
            env_config = os.getenv("SVP_CONFIG")
            if env_config:
                config_dir = Path(env_config).expanduser().resolve()
            else:
                config_dir = Path.home() / ".svp"

        self.config_dir = config_dir
        self.profiles_file = config_dir / "profiles.yaml"
        self.settings_file = config_dir / "settings.yaml"
        self._ensure_config_dir()
        self.service_id = "svp"

    def _ensure_config_dir(self) -> None:
        """Create config directory if it doesn't exist."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        if not self.profiles_file.exists():
            self._save_profiles({})

    def _load_yaml(self, path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise SVPError(f"Invalid YAML in {path}", output=str(e)) from e
        return data if isinstance(data, dict) else {}

    def _load_profiles(self) -> dict[str, Any]:
        """Load all profiles from the YAML file."""
        return self._load_yaml(self.profiles_file)

    def _save_profiles(self, profiles: dict[str, Any]) -> None:
        """Save profiles to the YAML file with proper permissions."""
        self.profiles_file.touch(mode=0o600)
        with open(self.profiles_file, "w") as f:
            yaml.safe_dump(profiles, f)

    def load_settings(self) -> ProvisionerSettings:
        """Read settings.yaml, falling back to defaults for missing keys."""
        return ProvisionerSettings.from_dict(self._load_yaml(self.settings_file))

    def save_settings(self, settings: ProvisionerSettings) -> None:
        with open(self.settings_file, "w") as f:
            yaml.safe_dump(asdict(settings), f, sort_keys=False)

    def set_setting(self, key: str, value: str) -> ProvisionerSettings:
        """Change one setting and write the full set back to settings.yaml."""
        if key not in {f.name for f in fields(ProvisionerSettings)}:
            raise SVPError(f"unknown setting: {key}")
        settings = self.load_settings()
        setattr(settings, key, value)
        self.save_settings(settings)
        return settings

    def add_profile(self, name: str, config: SSHConfig) -> None:
        """Add or update a server profile."""
        profiles = self._load_profiles()

        # Handle password via keyring
        password_ref = None
        if config.password:
            try:
                keyring.set_password(self.service_id, name, config.password)
                password_ref = "__keyring__"
            except KeyringError:
                # Fallback to plain text if keyring fails (e.g. headless without backend)
                password_ref = config.password

        profiles[name] = {
            "host": config.host,
            "user": config.user,
            "port": config.port,
            "key_path": config.key_path,
            "use_sudo": config.use_sudo,
            "password": password_ref,
        }
        self._save_profiles(profiles)

    def get_profile(self, name: str) -> SSHConfig | None:
        """Get an SSHConfig by profile name."""
        profiles = self._load_profiles()
        data = profiles.get(name)
        if not data:
            return None

        # Resolve password from keyring if needed
        password = data.get("password")
        if password == "__keyring__":
            try:
                password = keyring.get_password(self.service_id, name)
            except KeyringError:
                password = None

        return SSHConfig(
            host=data["host"],
            user=data.get("user", "root"),
            port=data.get("port", 22),
            key_path=data.get("key_path"),
            use_sudo=data.get("use_sudo", True),
            password=password,
        )

    def list_profiles(self) -> dict[str, Any]:
        """List all available profiles."""
        return self._load_profiles()

    def remove_profile(self, name: str) -> bool:
        """Remove a server profile."""
        profiles = self._load_profiles()
        if name not in profiles:
            return False

        if profiles[name].get("password") == "__keyring__":
            try:
                keyring.delete_password(self.service_id, name)
            except KeyringError:
                pass

        del profiles[name]
        self._save_profiles(profiles)
        return True
