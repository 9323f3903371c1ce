import os
from pathlib import Path
from typing import Any, Dict, Optional
import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_HOST = "localhost:4222"


class ConnectionOptions(BaseModel):
    """Everything needed to dial the broker.

    Built once from ClientSettings and never mutated afterwards.
    """
    model_config = ConfigDict(frozen=True)

    broker_address: str = DEFAULT_HOST
    use_tls: bool = False
    test_only: bool = False
    cert_path: str = ""
    key_path: str = ""
    ca_path: str = ""

    connect_timeout: float = 2.0  # seconds
    request_timeout: float = 0.5  # seconds

    @property
    def scheme(self) -> str:
        return "tls" if self.use_tls else "nats"

    @property
    def server_url(self) -> str:
        """Broker address prefixed with the scheme derived from use_tls."""
        if "://" in self.broker_address:
            return self.broker_address
        return f"{self.scheme}://{self.broker_address}"


class ClientSettings(BaseSettings):
    """Settings for the interactive client.

    Sources, lowest priority first: defaults, YAML file, NATSCLI_* env
    vars, command line flags.
    """

    host: str = DEFAULT_HOST
    tls: bool = False
    test: bool = False
    cert: str = ""
    key: str = ""
    ca: str = ""

    # Request/reply wait. The broker round-trip on a real network needs
    # far more than a few milliseconds.
    request_timeout: float = Field(0.5, gt=0)  # seconds
    connect_timeout: float = Field(2.0, gt=0)  # seconds

    # logger
    log_level: str = "WARNING"

    model_config = SettingsConfigDict(
        env_prefix="NATSCLI_",  # NATSCLI_HOST, NATSCLI_REQUEST_TIMEOUT etc.
        extra="forbid",
    )

    def connection_options(self) -> ConnectionOptions:
        return ConnectionOptions(
            broker_address=self.host,
            use_tls=self.tls,
            test_only=self.test,
            cert_path=self.cert,
            key_path=self.key,
            ca_path=self.ca,
            connect_timeout=self.connect_timeout,
            request_timeout=self.request_timeout,
        )

    @classmethod
    def from_yaml(cls, path: str | Path | None) -> "ClientSettings":
        """Utility for one-liner loading w/ override by env vars."""
        data: Dict[str, Any] = {}
        if path:
            path = Path(path)
            if path.exists():
                try:
                    with open(path, "r") as fh:
                        data = yaml.safe_load(fh) or {}
                except (IOError, yaml.YAMLError) as e:
                    raise SystemExit(f"[config] Error reading YAML file {path}: {e}") from e

        if not isinstance(data, dict):
            raise SystemExit(f"[config] YAML file {path} must contain a mapping")

        # env vars override yaml
        final_data: Dict[str, Any] = {}
        prefix = cls.model_config["env_prefix"]
        for field in cls.model_fields:
            env_name = f"{prefix}{field.upper()}"
            if env_name in os.environ:
                final_data[field] = os.environ[env_name]
            elif field in data:
                final_data[field] = data[field]

        unknown = set(data) - set(cls.model_fields)
        for field in unknown:
            final_data[field] = data[field]  # let extra="forbid" reject it

        try:
            return cls.model_validate(final_data)
        except ValidationError as e:
            raise SystemExit(f"[config] x {e}") from e

    def merged(self, overrides: Optional[Dict[str, Any]] = None) -> "ClientSettings":
        """Return a copy with the non-None overrides applied and
        validated."""
        values = self.model_dump()
        values.update({k: v for k, v in (overrides or {}).items() if v is not None})
        try:
            return type(self).model_validate(values)
        except ValidationError as e:
            raise SystemExit(f"[config] x {e}") from e
