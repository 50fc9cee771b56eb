"""Configuration system for restop."""

from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit

from restop.models import Mode


@dataclass
class TopConfig:
    """Process monitor settings."""

    interval: float = 1.5  # Seconds between refreshes
    sort: str = "P"  # Sort key, see `restop top --help`
    row_limit: int = 0  # Max table rows, 0 = as many as fit
    full_command: bool = True  # Command lines, or process names only


@dataclass
class SlabtopConfig:
    """Slab cache monitor settings."""

    interval: float = 3.0
    sort: str = "o"
    row_limit: int = 0
    slabinfo_path: str = "/proc/slabinfo"


@dataclass
class LoggingConfig:
    """Log file settings. The terminal belongs to the monitor, so logs only go to a file."""

    level: str = "WARNING"
    max_bytes: int = 1024 * 1024  # Max log file size (1MB)
    backup_count: int = 2  # Number of rotated files to keep


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        else:
            table.add(f.name, value)
    return table


def _load_section(cls: type, name: str, data: object) -> object:
    """Build a section dataclass, taking defaults for missing keys.

    Each value must have the type of its default; integers are accepted
    where a float is expected.
    """
    if not isinstance(data, dict):
        raise ValueError(f"[{name}] must be a table")
    defaults = cls()
    values = {}
    for f in fields(cls):
        default = getattr(defaults, f.name)
        value = data.get(f.name, default)
        expected = type(default)
        if expected is float and isinstance(value, int) and not isinstance(value, bool):
            value = float(value)
        if type(value) is not expected:
            raise ValueError(
                f"[{name}] {f.name} must be {expected.__name__}, got {value!r}"
            )
        values[f.name] = value
    return cls(**values)


@dataclass
class Config:
    """Main configuration container."""

    top: TopConfig = field(default_factory=TopConfig)
    slabtop: SlabtopConfig = field(default_factory=SlabtopConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "restop"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "restop"

    @property
    def log_path(self) -> Path:
        return self.state_dir / "restop.log"

    def for_mode(self, mode: Mode) -> TopConfig | SlabtopConfig:
        """Settings section of a monitor mode."""
        return self.top if mode is Mode.PROCESS else self.slabtop

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        path.write_text(self.to_toml())

    def to_toml(self) -> str:
        """The settings as the text of a config file."""
        doc = tomlkit.document()
        for name in ["top", "slabtop", "logging"]:
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())
        return tomlkit.dumps(doc)

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        All defaults come from the dataclass definitions, so Config() and
        Config.load() of an empty file are identical.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f).unwrap()
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        return cls(
            top=_load_section(TopConfig, "top", data.get("top", {})),
            slabtop=_load_section(SlabtopConfig, "slabtop", data.get("slabtop", {})),
            logging=_load_section(LoggingConfig, "logging", data.get("logging", {})),
        )
