"""
Centralized configuration management using Pydantic Settings.

Every section reads its own environment variables (see each section's
``env_prefix``). The ``ConfigManager`` wraps the validated settings object,
applies runtime overrides made from the admin console and notifies
subscribers when the configuration changes.
"""

import copy
import re
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, validator
from pydantic.types import SecretStr
from pydantic_settings import BaseSettings

from floraa.core.exceptions import ConfigurationError
from floraa.core.logging import get_logger
from floraa.core.message_bus import ConfigChanged, get_message_bus

logger = get_logger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _enabled_when_present(v, values, key_field: str):
    """Default an ``enabled`` flag to whether its credential is set."""
    if v is not None:
        return v
    secret = values.get(key_field)
    if isinstance(secret, SecretStr):
        secret = secret.get_secret_value()
    return bool(secret)


class AppSettings(BaseSettings):
    """Application identity and maintenance mode."""

    name: str = Field("Floraa.dev", description="Application name")
    url: str = Field("http://localhost:5173", description="Public URL")
    description: str = Field("AI-powered web development platform")
    logo: Optional[str] = Field(None, description="Logo URL")
    favicon: Optional[str] = Field(None, description="Favicon URL")
    version: str = Field("1.0.0", description="Running application version")
    maintenance_mode: bool = Field(False, description="Serve the maintenance page")
    maintenance_message: str = Field(
        "We are currently performing maintenance. Please check back soon."
    )

    class Config:
        env_prefix = "APP_"
        extra = "ignore"

    @validator("url", "logo", "favicon")
    def validate_url(cls, v):
        if v is not None and not re.match(r"^https?://", v):
            raise ValueError(f"Invalid URL: {v}")
        return v


class GitHubAuthSettings(BaseSettings):
    """GitHub OAuth application."""

    client_id: Optional[str] = Field(None, description="OAuth client id")
    client_secret: Optional[SecretStr] = Field(None, description="OAuth client secret")
    callback_url: Optional[str] = Field(None, description="OAuth callback URL")
    enabled: bool = Field(True, description="Allow GitHub sign-in")
    scope: str = Field("user:email repo read:org", description="Requested OAuth scopes")

    class Config:
        env_prefix = "GITHUB_"
        extra = "ignore"

    @property
    def is_configured(self) -> bool:
        """True when real (non-demo) OAuth credentials are present."""
        return bool(
            self.enabled
            and self.client_id
            and self.client_secret
            and self.client_id != "demo_client_id"
        )


class SessionSettings(BaseSettings):
    """Signed session cookie."""

    secret: SecretStr = Field(
        SecretStr("default-secret-change-in-production"),
        description="Signing secret (at least 32 characters)",
    )
    max_age: int = Field(30 * 24 * 60 * 60, description="Session lifetime in seconds")
    secure: bool = Field(False, description="Only send the cookie over HTTPS")
    cookie_name: str = Field("__floraa_session")

    class Config:
        env_prefix = "SESSION_"
        extra = "ignore"

    @validator("secret")
    def validate_secret(cls, v):
        if len(v.get_secret_value()) < 32:
            raise ValueError("Session secret must be at least 32 characters")
        return v


class RegistrationSettings(BaseSettings):
    """Self-service sign-up."""

    enabled: bool = True
    require_email_verification: bool = True
    default_plan: Literal["free", "pro", "enterprise"] = "free"

    class Config:
        env_prefix = "REGISTRATION_"
        extra = "ignore"


class AuthSettings(BaseSettings):
    """Authentication settings."""

    github: GitHubAuthSettings = Field(default_factory=GitHubAuthSettings)
    session: SessionSettings = Field(default_factory=SessionSettings)
    registration: RegistrationSettings = Field(default_factory=RegistrationSettings)

    class Config:
        extra = "ignore"


class ProviderSettings(BaseSettings):
    """Credentials and model list for one LLM provider."""

    api_key: Optional[SecretStr] = Field(None, description="Provider API key")
    enabled: Optional[bool] = Field(None, description="Defaults to whether an API key is set")
    models: List[str] = Field(default_factory=list)

    class Config:
        extra = "ignore"

    @validator("enabled", always=True)
    def default_enabled(cls, v, values):
        return _enabled_when_present(v, values, "api_key")

    def get_api_key(self) -> Optional[str]:
        return self.api_key.get_secret_value() if self.api_key else None

    def usable_api_key(self) -> Optional[str]:
        """API key, unless missing or a ``demo_*`` placeholder."""
        key = self.get_api_key()
        if key and not key.startswith("demo"):
            return key
        return None


class OpenAISettings(ProviderSettings):
    models: List[str] = Field(default_factory=lambda: ["gpt-4", "gpt-4-turbo", "gpt-3.5-turbo"])

    class Config:
        env_prefix = "OPENAI_"
        extra = "ignore"


class AnthropicSettings(ProviderSettings):
    models: List[str] = Field(
        default_factory=lambda: ["claude-3-5-sonnet-20241022", "claude-3-haiku-20240307"]
    )

    class Config:
        env_prefix = "ANTHROPIC_"
        extra = "ignore"


class GoogleSettings(ProviderSettings):
    models: List[str] = Field(default_factory=lambda: ["gemini-pro", "gemini-pro-vision"])

    class Config:
        env_prefix = "GOOGLE_"
        extra = "ignore"


class ProvidersSettings(BaseSettings):
    """All LLM providers."""

    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    anthropic: AnthropicSettings = Field(default_factory=AnthropicSettings)
    google: GoogleSettings = Field(default_factory=GoogleSettings)

    class Config:
        extra = "ignore"


class AISettings(BaseSettings):
    """LLM configuration."""

    providers: ProvidersSettings = Field(default_factory=ProvidersSettings)
    default_model: str = Field("claude-3-5-sonnet", description="Default model id or alias")
    temperature: float = Field(0.7, description="Model temperature")
    max_tokens: int = Field(4000, description="Max tokens per request")
    max_retries: int = Field(3, description="Attempts per provider call")
    retry_delay_seconds: float = Field(1.0, description="Initial retry delay")

    rate_limit_enabled: bool = Field(True, description="Throttle chat requests")
    requests_per_minute: int = Field(60)
    requests_per_hour: int = Field(1000)

    class Config:
        env_prefix = "AI_"
        extra = "ignore"


class EmailSettings(BaseSettings):
    """Transactional email."""

    provider: Literal["resend", "sendgrid", "mailgun", "smtp"] = "resend"
    api_key: Optional[SecretStr] = None
    from_email: str = "noreply@floraa.dev"
    from_name: str = "Floraa.dev"

    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = None
    smtp_username: Optional[str] = None
    smtp_password: Optional[SecretStr] = None
    smtp_secure: bool = True

    welcome_template: bool = True
    billing_template: bool = True
    marketing_template: bool = False

    class Config:
        env_prefix = "EMAIL_"
        extra = "ignore"

    @validator("from_email")
    def validate_from_email(cls, v):
        if not _EMAIL_RE.match(v):
            raise ValueError(f"Invalid email address: {v}")
        return v


class StripeSettings(BaseSettings):
    publishable_key: Optional[str] = None
    secret_key: Optional[SecretStr] = None
    webhook_secret: Optional[SecretStr] = None
    enabled: Optional[bool] = None

    class Config:
        env_prefix = "STRIPE_"
        extra = "ignore"

    @validator("enabled", always=True)
    def default_enabled(cls, v, values):
        return _enabled_when_present(v, values, "secret_key")


class PayPalSettings(BaseSettings):
    client_id: Optional[str] = None
    client_secret: Optional[SecretStr] = None
    enabled: Optional[bool] = None

    class Config:
        env_prefix = "PAYPAL_"
        extra = "ignore"

    @validator("enabled", always=True)
    def default_enabled(cls, v, values):
        return _enabled_when_present(v, values, "client_id")


class PaymentSettings(BaseSettings):
    """Payment gateways."""

    stripe: StripeSettings = Field(default_factory=StripeSettings)
    paypal: PayPalSettings = Field(default_factory=PayPalSettings)
    currency: str = "USD"
    tax_rate: float = 0.0

    class Config:
        env_prefix = "PAYMENTS_"
        extra = "ignore"


class SecuritySettings(BaseSettings):
    """HTTP-facing security settings."""

    rate_limit_enabled: bool = Field(True, description="Enable per-client rate limiting")
    rate_limit_requests: int = Field(100, description="Max requests per window")
    rate_limit_window_minutes: int = Field(15, description="Rate limit window")

    admin_logins: List[str] = Field(
        default_factory=list,
        description="GitHub logins allowed into admin endpoints; empty allows any signed-in user",
    )

    cors_enabled: bool = True
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"]
    )

    two_factor_enabled: bool = True
    two_factor_required: bool = False

    password_min_length: int = 8
    password_require_uppercase: bool = True
    password_require_lowercase: bool = True
    password_require_numbers: bool = True
    password_require_symbols: bool = False

    class Config:
        env_prefix = "SECURITY_"
        extra = "ignore"


class FeatureFlags(BaseSettings):
    """Feature flags toggled from the admin console."""

    multi_agent_system: bool = True
    git_integration: bool = True
    docker_support: bool = True
    team_collaboration: bool = False
    white_labeling: bool = False
    custom_models: bool = False
    advanced_analytics: bool = True
    api_access: bool = True
    auto_updates: bool = True

    class Config:
        env_prefix = "FEATURE_"
        extra = "ignore"


class AnalyticsSettings(BaseSettings):
    google_analytics_id: Optional[str] = None
    posthog_api_key: Optional[SecretStr] = None
    mixpanel_token: Optional[SecretStr] = None

    class Config:
        env_prefix = "ANALYTICS_"
        extra = "ignore"

    @property
    def enabled_integrations(self) -> List[str]:
        names = []
        if self.google_analytics_id:
            names.append("google_analytics")
        if self.posthog_api_key:
            names.append("posthog")
        if self.mixpanel_token:
            names.append("mixpanel")
        return names


class S3Settings(BaseSettings):
    access_key_id: Optional[str] = None
    secret_access_key: Optional[SecretStr] = None
    region: str = "us-east-1"
    bucket_name: Optional[str] = None

    class Config:
        env_prefix = "AWS_"
        extra = "ignore"


class StorageSettings(BaseSettings):
    """File storage."""

    provider: Literal["local", "s3", "gcs", "azure"] = "local"
    s3: S3Settings = Field(default_factory=S3Settings)
    max_file_size: int = Field(10 * 1024 * 1024, description="Upload limit in bytes")
    allowed_types: List[str] = Field(
        default_factory=lambda: ["image/*", "text/*", "application/json"]
    )

    class Config:
        env_prefix = "STORAGE_"
        extra = "ignore"


class ContextSettings(BaseSettings):
    """Project memory (vector store and embeddings)."""

    persist_directory: Optional[Path] = Field(None, description="Chroma directory, None for in-memory")
    collection_prefix: str = Field("floraa", description="Prefix for Chroma collection names")
    embedding_model: str = Field("text-embedding-3-small", description="OpenAI embedding model")
    embedding_dimension: int = Field(1536)
    use_remote_embeddings: bool = Field(True, description="Use OpenAI embeddings when a key is set")
    cache_size: int = Field(1000, description="Max cached embeddings")

    class Config:
        env_prefix = "CONTEXT_"
        extra = "ignore"


class UpdateSettings(BaseSettings):
    """Release checks and the update pipeline."""

    github_repo: str = Field("floraa-dev/floraa-saas", description="owner/repo publishing releases")
    current_version: str = Field("1.0.0", description="Installed version")
    api_url: str = Field("https://api.github.com")
    step_delay_seconds: float = Field(0.5, description="Delay between simulated pipeline steps")

    class Config:
        env_prefix = "UPDATE_"
        extra = "ignore"


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    log_level: str = Field("INFO", description="Default log level")
    console_log_level: str = Field("INFO", description="Console log level")
    file_log_level: str = Field("DEBUG", description="File log level")

    log_format: str = Field("text", description="Log format: text, structured, json")
    log_dir: Path = Field(Path("logs"), description="Log directory")
    log_file_name: str = Field("floraa.log", description="Log file name")
    log_to_file: bool = Field(True, description="Write a rotating log file")

    max_log_size_mb: int = Field(100, description="Max log file size in MB")
    backup_count: int = Field(5, description="Number of backup files to keep")

    class Config:
        env_prefix = "FLORAA_LOG_"
        extra = "ignore"


class Settings(BaseSettings):
    """Main settings class combining all configuration sections."""

    environment: str = Field("development", description="development or production")
    overrides_file: Optional[Path] = Field(None, description="YAML file holding admin overrides")

    app: AppSettings = Field(default_factory=AppSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    ai: AISettings = Field(default_factory=AISettings)
    email: EmailSettings = Field(default_factory=EmailSettings)
    payments: PaymentSettings = Field(default_factory=PaymentSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    features: FeatureFlags = Field(default_factory=FeatureFlags)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    context: ContextSettings = Field(default_factory=ContextSettings)
    update: UpdateSettings = Field(default_factory=UpdateSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "FLORAA_"
        extra = "ignore"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def deep_merge(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """Return ``base`` with ``updates`` merged in, recursing into dicts."""
    merged = copy.deepcopy(base)
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


# Sections whose ``enabled`` flag defaults to whether their credential is set
_CREDENTIAL_SECTIONS = (
    ("ai", "providers", "openai"),
    ("ai", "providers", "anthropic"),
    ("ai", "providers", "google"),
    ("payments", "stripe"),
    ("payments", "paypal"),
)


def _dump_for_rebuild(settings: Settings) -> Dict[str, Any]:
    """Dump ``settings`` without the ``enabled`` flags that were derived rather than set."""
    data = settings.model_dump()
    for path in _CREDENTIAL_SECTIONS:
        section, dumped = settings, data
        for name in path:
            section, dumped = getattr(section, name), dumped[name]
        if "enabled" not in section.model_fields_set:
            dumped.pop("enabled", None)
    return data


def _check_keys(model: BaseModel, updates: Dict[str, Any], path: str = "") -> None:
    """Reject override keys that do not name a settings field."""
    for key, value in updates.items():
        if key not in type(model).model_fields:
            raise ConfigurationError(f"Unknown configuration key: {path}{key}")
        current = getattr(model, key)
        if isinstance(value, dict) and isinstance(current, BaseModel):
            _check_keys(current, value, f"{path}{key}.")


ConfigListener = Callable[[Settings], None]


class ConfigManager:
    """
    Process-wide owner of the validated configuration.

    Startup order is defaults, then environment / ``.env``, then the YAML
    overrides file. ``update_config`` re-validates the whole configuration
    before swapping it in, so a rejected update leaves the old one in place.
    """

    def __init__(self, settings: Optional[Settings] = None, overrides_file: Optional[Path] = None):
        self._lock = threading.RLock()
        self._listeners: List[ConfigListener] = []
        self._overrides: Dict[str, Any] = {}
        base = settings or Settings()
        self._overrides_file = overrides_file or base.overrides_file
        self._config = self._load_overrides(base)

    def _load_overrides(self, base: Settings) -> Settings:
        path = self._overrides_file
        if not path or not Path(path).exists():
            return base

        with open(path, "r") as f:
            overrides = yaml.safe_load(f) or {}

        try:
            _check_keys(base, overrides)
            config = Settings(**deep_merge(_dump_for_rebuild(base), overrides))
        except (ValidationError, ConfigurationError) as e:
            raise ConfigurationError(f"Invalid overrides file {path}: {e}") from e

        self._overrides = overrides
        logger.info(f"Loaded configuration overrides from {path}")
        return config

    def get_config(self) -> Settings:
        return self._config

    def update_config(self, updates: Dict[str, Any]) -> Settings:
        """
        Apply a partial update to the configuration.

        Args:
            updates: Nested dict of section -> field -> value

        Returns:
            The new configuration

        Raises:
            ConfigurationError: If a key is unknown or a value fails validation
        """
        with self._lock:
            _check_keys(self._config, updates)
            try:
                new_config = Settings(**deep_merge(_dump_for_rebuild(self._config), updates))
            except ValidationError as e:
                raise ConfigurationError(f"Invalid configuration: {e}") from e

            self._overrides = deep_merge(self._overrides, updates)
            self._save_overrides()
            self._config = new_config

        logger.info(f"Configuration updated: {', '.join(sorted(updates))}")
        self._notify_listeners()
        get_message_bus().publish_sync(ConfigChanged(source="config_manager", sections=sorted(updates)))
        return new_config

    def _save_overrides(self) -> None:
        if not self._overrides_file:
            return
        path = Path(self._overrides_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(self._overrides, f, default_flow_style=False)
        logger.debug(f"Saved configuration overrides to {path}")

    def subscribe(self, listener: ConfigListener) -> Callable[[], None]:
        """Register a change listener. Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify_listeners(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._config)
            except Exception as e:
                logger.error(f"Error in config listener: {e}")

    # Helpers for common config access

    def is_maintenance_mode(self) -> bool:
        return self._config.app.maintenance_mode

    def set_maintenance_mode(self, enabled: bool, message: Optional[str] = None) -> None:
        app_updates: Dict[str, Any] = {"maintenance_mode": enabled}
        if message:
            app_updates["maintenance_message"] = message
        self.update_config({"app": app_updates})

    def is_feature_enabled(self, feature: str) -> bool:
        if feature not in FeatureFlags.model_fields:
            raise ConfigurationError(f"Unknown feature flag: {feature}")
        return getattr(self._config.features, feature)

    def set_feature(self, feature: str, enabled: bool) -> None:
        if feature not in FeatureFlags.model_fields:
            raise ConfigurationError(f"Unknown feature flag: {feature}")
        self.update_config({"features": {feature: enabled}})

    def get_ai_provider(self, provider: str) -> ProviderSettings:
        if provider not in ProvidersSettings.model_fields:
            raise ConfigurationError(f"Unknown AI provider: {provider}")
        return getattr(self._config.ai.providers, provider)

    def get_payment_provider(self, provider: str) -> BaseSettings:
        if provider not in ("stripe", "paypal"):
            raise ConfigurationError(f"Unknown payment provider: {provider}")
        return getattr(self._config.payments, provider)

    def public_config(self) -> Dict[str, Any]:
        """JSON-safe dump with every secret redacted."""
        return self._config.model_dump(mode="json")


# Global config manager instance
_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get the global config manager instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def set_config_manager(manager: Optional[ConfigManager]) -> None:
    """Replace (or clear, with None) the global config manager."""
    global _config_manager
    _config_manager = manager


def get_settings() -> Settings:
    """Get the current settings."""
    return get_config_manager().get_config()
