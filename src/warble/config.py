"""Application configuration.

AppConfig is a frozen dataclass: immutable after creation, IDE-autocompletable,
no string-key dict lookups.

Security settings that can be toggled during setup live on
``warble.security.config.SecurityConfig`` instead, which stays mutable
until the app freezes.
"""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = AppConfig(debug=True, secret_key="s3cr3t", public_dir="public")
    """

    # Development mode: error correlation ids are shown to clients
    debug: bool = False

    # Signing secret for CSRF tokens. Required when CSRF protection is on.
    secret_key: str = ""

    # Locale negotiation
    default_locale: str = "en"
    available_locales: tuple[str, ...] = ("en",)

    # Static tier: files under this directory are served for GET/HEAD
    public_dir: str | Path | None = None
    static_cache_control: str = "public, max-age=3600"

    # Where unauthenticated browser requests are redirected.
    # ``None`` answers with a plain 401 instead.
    login_path: str | None = None

    # Upper bound for a single scalar request parameter
    max_value_length: int = 10_000
