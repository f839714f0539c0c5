"""Configuration management for ImageShelter.

Supports layered configuration with priority: CLI args > ENV vars > .env file > defaults
"""

from __future__ import annotations

import logging
import os
import platform
import secrets
import string
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

import platformdirs
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from imageshelter.storage.models import StorageConfig
from imageshelter.storage.naming import COMPRESSION_SUFFIX
from imageshelter.storage.transforms import DEFAULT_CHUNK_SIZE

logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_EXTENSIONS: tuple[str, ...] = (
    # Images
    "png", "jpg", "jpeg", "bmp", "gif", "webp",
    # Text and source
    "txt", "js", "css", "html", "java", "py", "yaml", "yml", "ini", "md",
    # Archives
    "rar", "zip",
    # Video
    "mov", "mp4", "webm", "mkv", "flv", "vob", "ogg", "drc", "giv", "avi", "wmv", "yuv",
    "m4p", "m4v", "mpg", "mpeg", "m2v", "3gp", "3g2",
    # Audio
    "aa", "aac", "alac", "flac", "m4b", "mp3", "opus", "raw", "voc", "wav",
)  # fmt: skip

DEFAULT_COMPRESSED_EXTENSIONS: tuple[str, ...] = (
    "bmp", "txt", "js", "css", "html", "java", "py", "yaml", "yml", "ini", "md", "raw",
)  # fmt: skip

SECRET_LENGTH = 32


def _generate_secret() -> str:
    """Generate a random alphanumeric shared secret."""
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(SECRET_LENGTH))


def _split_list(v: Any) -> list[str]:
    """Parse a comma-separated string or a sequence into a list of strings."""
    if v is None:
        return []
    if isinstance(v, str):
        return [item.strip() for item in v.split(",") if item.strip()]
    if isinstance(v, list | tuple | set | frozenset):
        return [str(item).strip() for item in v if str(item).strip()]
    raise ValueError(f"Expected a comma-separated string or a list, got {type(v).__name__}")


def _normalize_extensions(values: list[str]) -> list[str]:
    """Lower-case extensions, strip leading dots and drop duplicates (order kept)."""
    normalized: list[str] = []
    for value in values:
        ext = value.strip().lstrip(".").lower()
        if ext and ext not in normalized:
            normalized.append(ext)
    return normalized


def _is_path_in_readonly_location(path: Path) -> tuple[bool, str | None]:
    """Check if path is in a common read-only location.

    Args:
        path: Path to check

    Returns:
        Tuple of (is_readonly, reason_message)
    """
    path_str = str(path.resolve())
    system = platform.system()

    readonly_prefixes: list[str] = []
    if system == "Linux":
        readonly_prefixes = ["/usr/", "/bin/", "/sbin/", "/lib/", "/lib64/", "/boot/", "/sys/", "/proc/"]
    elif system == "Darwin":
        readonly_prefixes = ["/System/", "/usr/", "/bin/", "/sbin/"]
    elif system == "Windows":
        readonly_prefixes = ["C:\\Windows\\", "C:\\Program Files\\", "C:\\Program Files (x86)\\"]

    for prefix in readonly_prefixes:
        if path_str.startswith(prefix):
            return True, f"Path is in system directory: {prefix}"

    if hasattr(os, "statvfs"):
        try:
            if path.exists():
                st = os.statvfs(path)
                # ST_RDONLY
                if st.f_flag & 0x0001:
                    return True, "Filesystem is mounted read-only"
        except OSError:
            pass

    return False, None


def _format_permission_error_message(path: Path, label: str, operation: str, error: Exception) -> str:
    """Format a helpful permission error message with fix suggestions.

    Args:
        path: Path that caused the error
        label: Human-readable directory label (e.g. "upload")
        operation: Operation that failed (e.g., "create", "write to")
        error: The original exception

    Returns:
        Formatted error message with fix suggestions
    """
    is_readonly, readonly_reason = _is_path_in_readonly_location(path)

    msg = f"Cannot {operation} {label} directory: {path}"

    if is_readonly:
        msg += f"\n  ⚠ {readonly_reason}"
    else:
        msg += f"\n  → Error: {error}"
    msg += "\n  → Fix: Grant write permissions or use a writable location with --data-dir:"
    msg += "\n         imageshelter --data-dir ~/ImageShelter"
    msg += "\n  → Tip: Use --validate to test configuration without starting the server"

    return msg


def _get_default_data_dir() -> Path:
    """Get platform-appropriate default data directory using platformdirs.

    Uses OS-specific conventions:
    - macOS: ~/Library/Application Support/ImageShelter
    - Windows: %APPDATA%/ImageShelter
    - Linux: ~/.local/share/imageshelter

    Returns:
        Path to platform-specific user data directory
    """
    return Path(platformdirs.user_data_dir("ImageShelter", "ImageShelter"))


def get_user_log_dir() -> Path:
    """Get platform-appropriate user logs directory.

    Uses OS-specific conventions:
    - macOS: ~/Library/Logs/ImageShelter
    - Windows: %LOCALAPPDATA%/ImageShelter/Logs
    - Linux: ~/.local/state/imageshelter/log

    Returns:
        Path to platform-specific logs directory
    """
    return Path(platformdirs.user_log_dir("ImageShelter", "ImageShelter"))


class Settings(BaseSettings):
    """Application settings with layered configuration support.

    Configuration is loaded in the following priority (highest to lowest):
    1. CLI arguments (passed directly to Settings())
    2. Environment variables (prefixed with IMAGESHELTER_)
    3. .env file (if present in current directory)
    4. Default values

    Example:
        ```python
        # Load settings from environment and .env
        settings = get_settings()

        # Override with CLI arguments
        settings = Settings(host="0.0.0.0", port=9000)

        # Build the storage configuration
        config = settings.storage_config()
        ```

    Environment variables:
        IMAGESHELTER_HOST: Server host (default: 127.0.0.1)
        IMAGESHELTER_PORT: Server port (default: 8282)
        IMAGESHELTER_DATA_DIR: Data directory path
        IMAGESHELTER_SECRETS: Comma-separated upload secrets
        IMAGESHELTER_ALLOWED_EXTENSIONS: Comma-separated extensions accepted for upload
        IMAGESHELTER_COMPRESSED_EXTENSIONS: Comma-separated extensions stored gzip-compressed
        IMAGESHELTER_ENCRYPT: Encrypt stored objects (default: true)
        IMAGESHELTER_BACKUP_KEYS: Write each key to the key backup directory (default: false)
    """

    model_config = SettingsConfigDict(
        env_prefix="IMAGESHELTER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Server settings
    host: str = Field(
        default="127.0.0.1",
        description="Server host to bind to",
    )
    port: int = Field(
        default=8282,
        ge=1,
        le=65535,
        description="Server port to bind to",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode (verbose logging, auto-reload)",
    )

    # Paths
    data_dir: Path = Field(
        default_factory=_get_default_data_dir,
        description="Base directory for application data",
    )
    upload_dir: Path | None = Field(
        default=None,
        description="Storage root for uploaded objects (default: <data_dir>/uploads)",
    )
    key_backup_dir: Path | None = Field(
        default=None,
        description="Directory for key backups (default: <data_dir>/key_backup)",
    )

    # Storage
    secrets: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: [_generate_secret()],
        description="Shared secrets accepted on upload (comma-separated in env var)",
    )
    allowed_extensions: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_EXTENSIONS),
        description="Extensions accepted for upload (comma-separated in env var)",
    )
    compressed_extensions: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_COMPRESSED_EXTENSIONS),
        description="Extensions stored gzip-compressed (comma-separated in env var)",
    )
    encrypt: bool = Field(
        default=True,
        description="Encrypt every stored object with a fresh per-upload key",
    )
    backup_keys: bool = Field(
        default=False,
        description="Write each upload's key to the key backup directory",
    )
    chunk_size: int = Field(
        default=DEFAULT_CHUNK_SIZE,
        ge=512,
        le=1024 * 1024,
        description="Copy buffer size in bytes",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_to_file: bool = Field(
        default=True,
        description="Enable logging to file (in addition to console)",
    )
    log_file_max_bytes: int = Field(
        default=10 * 1024 * 1024,  # 10 MB
        ge=1024 * 1024,  # Min 1 MB
        le=100 * 1024 * 1024,  # Max 100 MB
        description="Maximum size of each log file before rotation",
    )
    log_file_backup_count: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Number of backup log files to keep",
    )
    log_format: str = Field(
        default="text",
        description="Log format: 'text' for human-readable, 'json' for structured logging",
    )
    verbose: bool = Field(
        default=False,
        description="Enable verbose logging (request logs for every response)",
    )

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format is supported."""
        valid_formats = {"text", "json"}
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of: {', '.join(valid_formats)}")
        return v_lower

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a known level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of: {', '.join(valid_levels)}")
        return v_upper

    @field_validator("secrets", mode="before")
    @classmethod
    def parse_secrets(cls, v: Any) -> list[str]:
        """Parse secrets from a comma-separated string or list."""
        return _split_list(v)

    @field_validator("allowed_extensions", "compressed_extensions", mode="before")
    @classmethod
    def parse_extensions(cls, v: Any) -> list[str]:
        """Parse extensions and normalize them to lower case without dots."""
        return _normalize_extensions(_split_list(v))

    @model_validator(mode="after")
    def default_storage_dirs(self) -> Settings:
        """Derive storage directories from data_dir unless set explicitly."""
        # Don't create directories during validation - they're created on demand
        if self.upload_dir is None:
            self.upload_dir = self.data_dir / "uploads"
        if self.key_backup_dir is None:
            self.key_backup_dir = self.data_dir / "key_backup"
        return self

    @property
    def uploads_path(self) -> Path:
        """Storage root for uploaded objects."""
        return self.upload_dir or self.data_dir / "uploads"

    @property
    def key_backup_path(self) -> Path:
        """Directory for key backup files."""
        return self.key_backup_dir or self.data_dir / "key_backup"

    @property
    def log_dir(self) -> Path:
        """Directory for log files (uses platform-specific directory)."""
        return get_user_log_dir()

    @property
    def log_file_path(self) -> Path:
        """Path to the main log file."""
        return self.log_dir / "imageshelter.log"

    def storage_config(self) -> StorageConfig:
        """Build the immutable storage configuration.

        Returns:
            StorageConfig shared by the encode and decode pipelines
        """
        return StorageConfig(
            upload_dir=self.uploads_path,
            allowed_extensions=frozenset(self.allowed_extensions),
            compressed_extensions=frozenset(self.compressed_extensions),
            encrypt=self.encrypt,
            secrets=frozenset(self.secrets),
            chunk_size=self.chunk_size,
        )

    def _storage_dirs(self) -> list[tuple[str, Path]]:
        dirs = [("upload", self.uploads_path)]
        if self.backup_keys:
            dirs.append(("key backup", self.key_backup_path))
        return dirs

    def ensure_data_dirs(self) -> list[str]:
        """Create storage directories if they don't exist.

        Returns:
            List of error messages (empty if all successful)
        """
        errors = []

        dirs_to_create = [("data", self.data_dir), *self._storage_dirs()]
        if self.log_to_file:
            dirs_to_create.append(("log", self.log_dir))

        for dir_name, dir_path in dirs_to_create:
            try:
                dir_path.mkdir(parents=True, exist_ok=True)
            except PermissionError as e:
                errors.append(_format_permission_error_message(dir_path, dir_name, "create", e))
            except OSError as e:
                errors.append(f"Failed to create {dir_name} directory: {dir_path} ({e})")

        return errors

    def check(self) -> list[str]:
        """Validate configuration and return any warnings.

        Returns:
            List of warning messages (empty if all is well)
        """
        warnings = []

        if self.debug and self.host == "0.0.0.0":  # nosec B104
            warnings.append(
                "Debug mode enabled with public host binding - not recommended for production"
            )

        stray = sorted(set(self.compressed_extensions) - set(self.allowed_extensions))
        if stray:
            warnings.append(
                f"Compressed extensions not in the allow-list are never used: {', '.join(stray)}"
            )

        if self.backup_keys and not self.encrypt:
            warnings.append("Key backup is enabled but encryption is disabled - no keys to back up")

        if not self.encrypt:
            warnings.append("Encryption is disabled - objects are stored in plain form")

        return warnings

    def validate(self) -> list[str]:  # type: ignore[override]
        """Strict validation for startup - fails fast with all errors at once.

        Validates:
        - At least one upload secret is configured
        - At least one extension is allowed
        - The compression marker is not an allowed extension
        - Storage directories can be created and written to
        - Port is not already in use (basic check)

        Returns:
            List of error messages (empty if validation passes)

        Example:
            ```python
            settings = Settings()
            errors = settings.validate()
            if errors:
                for error in errors:
                    print(f"ERROR: {error}")
                sys.exit(1)
            ```
        """
        errors = []

        if not self.secrets:
            errors.append(
                "No upload secrets configured\n"
                "  → Fix: Set IMAGESHELTER_SECRETS to a comma-separated list of secrets"
            )

        if not self.allowed_extensions:
            errors.append(
                "No allowed extensions configured - every upload would be rejected\n"
                "  → Fix: Set IMAGESHELTER_ALLOWED_EXTENSIONS (e.g. png,jpg,txt)"
            )

        marker = COMPRESSION_SUFFIX.lstrip(".")
        if marker in self.allowed_extensions:
            errors.append(
                f"Extension '{marker}' collides with the compression marker - "
                f"such uploads would be decompressed on retrieval\n"
                f"  → Fix: Remove {marker} from IMAGESHELTER_ALLOWED_EXTENSIONS"
            )

        for label, path in self._storage_dirs():
            error = self._check_writable(label, path)
            if error:
                errors.append(error)

        from imageshelter.utils.ports import port_conflict

        conflict = port_conflict(self.host, self.port)
        if conflict:
            errors.append(conflict)

        return errors

    @staticmethod
    def _check_writable(label: str, path: Path) -> str | None:
        """Create ``path`` if needed and test it with a temporary file."""
        try:
            if path.exists() and not path.is_dir():
                return (
                    f"{label.capitalize()} path exists but is not a directory: {path}\n"
                    f"  → Fix: Remove the file or use --data-dir to choose a different location"
                )
            path.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(dir=path, delete=True):
                pass
        except PermissionError as e:
            return _format_permission_error_message(path, label, "write to", e)
        except OSError as e:
            return (
                f"Cannot write to {label} directory: {path}\n"
                f"  → Error: {e}\n"
                f"  → Fix: Check directory permissions and disk space"
            )
        return None

    def print_config(self) -> None:
        """Print current configuration to stdout (secrets masked)."""
        print("ImageShelter Configuration:")
        print(f"  Host: {self.host}")
        print(f"  Port: {self.port}")
        print(f"  Debug: {self.debug}")
        print(f"  Log Level: {self.log_level}")
        print(f"  Log Format: {self.log_format}")
        print(f"  Verbose: {self.verbose}")
        print(f"  Log to File: {self.log_to_file}")
        if self.log_to_file:
            print(f"  Log File: {self.log_file_path}")
            print(f"  Log Max Size: {self.log_file_max_bytes / (1024 * 1024):.1f} MB")
            print(f"  Log Backup Count: {self.log_file_backup_count}")
        print(f"  Data Directory: {self.data_dir}")
        print(f"  Upload Directory: {self.uploads_path}")
        print(f"  Secrets: {len(self.secrets)} configured")
        print(f"  Encryption: {self.encrypt}")
        print(f"  Key Backup: {self.backup_keys}")
        if self.backup_keys:
            print(f"  Key Backup Directory: {self.key_backup_path}")
        print(f"  Allowed Extensions: {', '.join(self.allowed_extensions)}")
        print(f"  Compressed Extensions: {', '.join(self.compressed_extensions)}")
        print(f"  Chunk Size: {self.chunk_size} bytes")


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Settings are loaded once and cached. To reload settings,
    call get_settings.cache_clear() first.

    Returns:
        Settings instance
    """
    return Settings()


def reset_settings() -> None:
    """Clear settings cache to force reload on next get_settings() call."""
    get_settings.cache_clear()
