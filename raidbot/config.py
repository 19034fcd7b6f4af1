"""Configuration handling for raidbot.

Settings live in a JSON file that is created on first run.  It stores the
database connection, HTTP server options, the Discord bot token and the raid
lifecycle durations.  Missing required values are prompted for on startup and
the result is written back to disk with permissions ``0o600``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import timedelta
from pathlib import Path
import json
import logging
import getpass
from urllib.parse import quote_plus

from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine

CFG_PATH = Path.home() / ".config" / "raidbot" / "config.json"


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 5050
    api_key: str = ""


@dataclass
class DBProfile:
    """Connection information for a remote MySQL database."""

    host: str = "127.0.0.1"
    port: int = 3306
    database: str = "raidbot"
    user: str = "raidbot"
    password: str = ""


@dataclass
class DatabaseConfig:
    """Local SQLite file or remote MySQL profile."""

    use_remote: bool = False
    sqlite_path: str = str(Path.home() / ".local" / "share" / "raidbot" / "raids.db")
    remote: DBProfile = field(default_factory=DBProfile)

    @property
    def url(self) -> str:
        if not self.use_remote:
            return f"sqlite+aiosqlite:///{self.sqlite_path}"
        cfg = self.remote
        return (
            f"mysql+aiomysql://{quote_plus(cfg.user)}:{quote_plus(cfg.password)}"
            f"@{cfg.host}:{cfg.port}/{cfg.database}"
        )


@dataclass
class RaidSettings:
    """Durations driving raid creation and the lifecycle sweep."""

    sweep_interval_seconds: int = 60
    start_clear_minutes: int = 15
    deletion_warning_minutes: int = 15
    default_raid_duration_minutes: int = 120
    hatched_egg_duration_minutes: int = 45
    completion_poll_timeout_minutes: int = 15

    @property
    def sweep_interval(self) -> timedelta:
        return timedelta(seconds=self.sweep_interval_seconds)

    @property
    def start_clear(self) -> timedelta:
        return timedelta(minutes=self.start_clear_minutes)

    @property
    def deletion_warning(self) -> timedelta:
        return timedelta(minutes=self.deletion_warning_minutes)

    @property
    def default_raid_duration(self) -> timedelta:
        return timedelta(minutes=self.default_raid_duration_minutes)

    @property
    def hatched_egg_duration(self) -> timedelta:
        return timedelta(minutes=self.hatched_egg_duration_minutes)

    @property
    def completion_poll_timeout(self) -> timedelta:
        return timedelta(minutes=self.completion_poll_timeout_minutes)


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    raid: RaidSettings = field(default_factory=RaidSettings)
    discord_token: str = ""
    guild_id: int | None = None
    venues_path: str = "venues.json"


def load_config(path: Path = CFG_PATH) -> AppConfig:
    if path.exists():
        try:
            data = json.loads(path.read_text())
        except json.JSONDecodeError:
            logging.warning("Invalid JSON in %s, using defaults", path)
            return AppConfig()
        db_data = dict(data.get("database", {}))
        remote = DBProfile(**db_data.pop("remote", {}))
        return AppConfig(
            server=ServerConfig(**data.get("server", {})),
            database=DatabaseConfig(remote=remote, **db_data),
            raid=RaidSettings(**data.get("raid", {})),
            discord_token=data.get("discord_token", ""),
            guild_id=data.get("guild_id"),
            venues_path=data.get("venues_path", "venues.json"),
        )
    return AppConfig()


def save_config(cfg: AppConfig, path: Path = CFG_PATH) -> None:
    data = {
        "server": asdict(cfg.server),
        "database": asdict(cfg.database),
        "raid": asdict(cfg.raid),
        "discord_token": cfg.discord_token,
        "guild_id": cfg.guild_id,
        "venues_path": cfg.venues_path,
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2))
    try:
        path.chmod(0o600)
    except OSError as exc:  # pragma: no cover - platform dependent
        logging.warning("Unable to set permissions on %s: %s", path, exc)


async def ensure_config(force_reconfigure: bool = False) -> AppConfig:
    """Load configuration, prompting the user for any missing values.

    Parameters
    ----------
    force_reconfigure:
        If ``True`` all values are prompted for even if a ``config.json``
        file already exists.
    """

    cfg = load_config()

    def _prompt_database() -> None:
        resp = input("Use remote MySQL server? (y/N): ").strip().lower()
        cfg.database.use_remote = resp.startswith("y")
        if not cfg.database.use_remote:
            cfg.database.sqlite_path = (
                input(f"SQLite file [{cfg.database.sqlite_path}]: ").strip()
                or cfg.database.sqlite_path
            )
            return
        profile = cfg.database.remote
        profile.host = input(f"MySQL host [{profile.host}]: ") or profile.host
        profile.port = int(input(f"MySQL port [{profile.port}]: ") or profile.port)
        profile.database = (
            input(f"MySQL database [{profile.database}]: ") or profile.database
        )
        profile.user = input(f"MySQL username [{profile.user}]: ") or profile.user
        pwd = getpass.getpass("MySQL password: ")
        if pwd:
            profile.password = pwd

    async def _check_database() -> bool:
        if not cfg.database.use_remote:
            Path(cfg.database.sqlite_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            engine = create_async_engine(cfg.database.url, echo=False, future=True)
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            await engine.dispose()
            return True
        except Exception as exc:  # pragma: no cover - interactive prompt
            print(f"Database connection failed: {exc}")
            return False

    needs_prompt = force_reconfigure or not cfg.discord_token or not cfg.guild_id

    if needs_prompt:
        while True:
            _prompt_database()
            if await _check_database():
                break
        cfg.discord_token = (
            input(f"Enter Discord bot token [{cfg.discord_token}]: ").strip()
            or cfg.discord_token
        )
        guild = input(f"Discord guild id [{cfg.guild_id or ''}]: ").strip()
        if guild:
            cfg.guild_id = int(guild)

    save_config(cfg)
    return cfg
