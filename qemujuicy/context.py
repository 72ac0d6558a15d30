import logging
import os
import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from qemujuicy import APP_NAME
from qemujuicy.errors import ConfigError
from qemujuicy.properties import AppProperties

logger = logging.getLogger(__name__)

APP_DIR_MS_WIN = APP_NAME
APP_DIR_LINUX_UNIX = ".qemujuicy"
CONFIG_FILE = "config.xml"
LOG_FILE = "log.txt"
VM_DISKS_DIR = "vm"


def detect_os() -> str:
    system = platform.system().lower()
    if system.startswith("win"):
        return "windows"
    if system == "darwin":
        return "mac"
    if system == "linux":
        return "linux"
    return "other"


def resolve_app_dir(os_name: str, environ: Optional[Mapping[str, str]] = None, home: Optional[Path] = None) -> Path:
    environ = os.environ if environ is None else environ
    if os_name == "windows":
        base = environ.get("APPDATA") or environ.get("LOCALAPPDATA")
        return Path(base) / APP_DIR_MS_WIN if base else Path(APP_DIR_MS_WIN)
    home = Path.home() if home is None else home
    return home / APP_DIR_LINUX_UNIX


@dataclass
class AppContext:
    """Everything a session needs to know, passed around explicitly."""

    app_dir: Path
    os_name: str
    properties: AppProperties
    verbose: bool = True
    first_start: bool = False

    @property
    def config_path(self) -> Path:
        return self.app_dir / CONFIG_FILE

    @property
    def log_path(self) -> Path:
        return self.app_dir / LOG_FILE

    @property
    def vm_dir(self) -> Path:
        path = self.properties.get(AppProperties.VM_DISK_PATH) or ""
        return Path(path) if path.strip() else self.app_dir / VM_DISKS_DIR

    def ensure_vm_dir(self) -> Path:
        path = self.vm_dir
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigError(f"Cannot create or write to '{path}': {e}") from e
        return path

    @classmethod
    def create(cls, verbose: bool = True, os_name: Optional[str] = None,
               environ: Optional[Mapping[str, str]] = None, home: Optional[Path] = None) -> "AppContext":
        os_name = os_name or detect_os()
        app_dir = resolve_app_dir(os_name, environ, home)
        try:
            app_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigError(f"Cannot create or write to '{app_dir}': {e}") from e
        config_path = app_dir / CONFIG_FILE
        # no configuration file yet: this is the first start, setup needed
        first_start = not config_path.is_file()
        properties = AppProperties.open(str(config_path))
        context = cls(app_dir, os_name, properties, verbose, first_start)
        if first_start:
            properties.set(AppProperties.VM_DISK_PATH, str(app_dir / VM_DISKS_DIR))
            properties.store()
        context.ensure_vm_dir()
        return context
