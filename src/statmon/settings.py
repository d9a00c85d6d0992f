"""Command-line and config file settings for statmon."""

import argparse
import logging
import math
import threading
import tomllib
from dataclasses import dataclass, fields

from statmon.errors import ConfigError
from statmon.models import CpuId, cpu_id_from_label
from statmon.parser import DEFAULT_STAT_PATH

logger = logging.getLogger(__name__)

OUTPUT_MODES = ("text", "json", "tui")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(slots=True)
class Settings:
    """Resolved runtime settings."""

    pid_file: str | None = None
    config_file: str | None = None
    stat_path: str = DEFAULT_STAT_PATH
    cpu: str = "cpu"
    interval: float = 5.0
    count: int | None = None
    output: str = "text"
    log_level: str = "WARNING"

    @property
    def cpu_id(self) -> CpuId:
        """Identity of the configured cpu line."""
        return cpu_id_from_label(self.cpu)

    def validate(self) -> None:
        """Raise ConfigError if any value is out of range."""
        if self.interval <= 0:
            raise ConfigError(f"interval must be positive, got {self.interval}")
        if not math.isfinite(self.interval) or self.interval > threading.TIMEOUT_MAX:
            raise ConfigError(f"interval must be finite and at most {threading.TIMEOUT_MAX:g}, got {self.interval}")
        if self.count is not None and self.count < 1:
            raise ConfigError(f"count must be at least 1, got {self.count}")
        if self.output not in OUTPUT_MODES:
            raise ConfigError(f"output must be one of {', '.join(OUTPUT_MODES)}, got {self.output!r}")
        if self.log_level not in LOG_LEVELS:
            raise ConfigError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level!r}")
        try:
            cpu_id_from_label(self.cpu)
        except ValueError as e:
            raise ConfigError(f"cpu must be 'cpu' or 'cpuN': {e}") from e


# Config file keys and the types they accept
CONFIG_KEYS: dict[str, tuple[type, ...]] = {
    "pid_file": (str,),
    "stat_path": (str,),
    "cpu": (str,),
    "interval": (int, float),
    "count": (int,),
    "output": (str,),
    "log_level": (str,),
}


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the statmon command."""
    parser = argparse.ArgumentParser(
        prog="statmon",
        description="Report CPU utilization from kernel time counters.",
    )
    parser.add_argument("-p", "--pid-file", dest="pid_file", metavar="PID", help="set location for pid file")
    parser.add_argument(
        "-c", "--config-file", dest="config_file", metavar="CFG", help="set location of TOML config file"
    )
    parser.add_argument("-i", "--interval", type=float, help="seconds between the two reads of a cycle")
    parser.add_argument("-n", "--count", type=int, help="stop after this many reports")
    parser.add_argument("--cpu", help="cpu line to sample: 'cpu' for all cores or 'cpuN'")
    parser.add_argument("--stat-path", dest="stat_path", help="counter file to read (default: /proc/stat)")
    parser.add_argument("-o", "--output", choices=OUTPUT_MODES, help="output format")
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="more logging (repeat for debug output)"
    )
    return parser


def load_config(settings: Settings, path: str) -> None:
    """
    Apply values from a TOML config file onto ``settings``.

    A missing file only warns; an unparsable file or a wrongly typed value
    raises ConfigError.
    """
    try:
        with open(path, "rb") as conf_file:
            conf_table = tomllib.load(conf_file)
    except FileNotFoundError as e:
        logger.warning("Failed to open config file, using defaults - %s", e)
        return
    except OSError as e:
        raise ConfigError(f"Error reading config file {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Error parsing config file {path}: {e}") from e

    for key, value in conf_table.items():
        expected = CONFIG_KEYS.get(key)
        if expected is None:
            logger.warning("Ignoring unknown config key %r in %s", key, path)
            continue
        # bool is an int subclass but never a valid value here
        if isinstance(value, bool) or not isinstance(value, expected):
            names = " or ".join(t.__name__ for t in expected)
            raise ConfigError(f"In config file {key} should be {names}, got {value!r}")
        setattr(settings, key, value)


def get_settings(argv: list[str] | None = None) -> Settings:
    """
    Resolve settings from defaults, the config file and the command line.

    The config file is loaded first so that command-line options win.
    """
    args = build_parser().parse_args(argv)
    settings = Settings()

    if args.config_file is not None:
        settings.config_file = args.config_file
        load_config(settings, args.config_file)

    for f in fields(Settings):
        value = getattr(args, f.name, None)
        if value is not None and f.name != "config_file":
            setattr(settings, f.name, value)

    if args.verbose:
        settings.log_level = "DEBUG" if args.verbose > 1 else "INFO"

    settings.log_level = settings.log_level.upper()
    settings.validate()
    return settings
