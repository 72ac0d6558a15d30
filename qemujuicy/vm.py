import logging
import os
import subprocess
import threading
from typing import List, Optional, Tuple

from qemujuicy.options import DEVICES, Device
from qemujuicy.properties import VMProperties

logger = logging.getLogger(__name__)


def safe_name(name: str) -> str:
    return name.replace(" ", "_")


class VM:
    def __init__(self, properties: VMProperties, echo: bool = True):
        self.properties = properties
        # False in quiet mode (-q): no verbose output for any VM
        self.echo = echo
        self.proc: Optional[subprocess.Popen] = None
        self._running = False
        self._lock = threading.Lock()

    @classmethod
    def from_file(cls, path: str, echo: bool = True) -> "VM":
        return cls(VMProperties.load(path), echo)

    def __str__(self):
        return self.name

    def __repr__(self):
        return f"VM({self.name!r})"

    def get_property(self, key: str) -> str:
        return self.properties.get(key) or ""

    def set_property(self, key: str, value, store: bool = False):
        self.properties.set(key, value)
        if store:
            self.properties.store()

    @property
    def name(self) -> str:
        return self.get_property(VMProperties.VM_NAME)

    @property
    def name_safe(self) -> str:
        return self.get_property(VMProperties.VM_NAME_SAFE) or safe_name(self.name)

    @property
    def path(self) -> str:
        return self.properties.path

    @property
    def directory(self) -> str:
        return os.path.dirname(os.path.abspath(self.path))

    @property
    def filename(self) -> str:
        return self.get_property(VMProperties.VM_FILENAME) or os.path.basename(self.path)

    @property
    def disk_name(self) -> str:
        return self.get_property(VMProperties.DRIVE_HDA_NAME)

    @property
    def disk_path(self) -> str:
        return os.path.join(self.directory, self.disk_name)

    @property
    def disk_size_gb(self) -> int:
        return self.properties.get_int(VMProperties.DRIVE_HDA_SIZE_GB)

    @property
    def memory_mb(self) -> int:
        return self.properties.get_int(VMProperties.VM_MEMORY_MB, 1000)

    @property
    def cpus(self) -> str:
        return self.get_property(VMProperties.CPUS)

    @property
    def accelerator(self) -> str:
        return self.get_property(VMProperties.ACCELERATOR)

    @property
    def qemu_cmd(self) -> str:
        return self.get_property(VMProperties.VM_QEMU)

    @property
    def sound(self) -> str:
        return self.get_property(VMProperties.SOUND)

    @property
    def network_enabled(self) -> bool:
        return self.get_property(VMProperties.NETWORK).strip().lower() != "false"

    @property
    def boot_menu(self) -> bool:
        return self.properties.get_bool(VMProperties.QEMU_BOOT_MENU)

    @property
    def full_definition(self) -> bool:
        return self.properties.get_bool(VMProperties.FULL_QEMU_DEFINITION)

    @property
    def full_definition_command(self) -> str:
        return self.get_property(VMProperties.FULL_QEMU_DEFINITION_CMD)

    @property
    def extra_parameters(self) -> str:
        return self.get_property(VMProperties.EXTRA_PARAMETERS)

    @property
    def is_verbose(self) -> bool:
        return self.properties.get_bool(VMProperties.VERBOSE)

    def devices(self) -> List[Tuple[Device, str]]:
        return [(d, self.get_property(d.property_name)) for d in DEVICES if self.get_property(d.property_name).strip()]

    def verbose(self, text: str):
        if self.echo and self.is_verbose:
            print(f"VM '{self.name}': {text}")

    @property
    def is_running(self) -> bool:
        return self._running

    def set_running(self, flag: bool):
        with self._lock:
            self._running = flag

    def attach_process(self, proc: subprocess.Popen):
        with self._lock:
            self.proc = proc
            self._running = True

    def clear_process(self) -> bool:
        """Resets the running state, True if the VM was running before."""
        with self._lock:
            was_running = self._running
            self._running = False
            self.proc = None
        return was_running

    def stop(self):
        proc = self.proc
        if proc and proc.poll() is None:
            logger.info("VM '%s': terminating process %s", self.name, proc.pid)
            proc.terminate()

    def kill(self):
        proc = self.proc
        if proc and proc.poll() is None:
            logger.info("VM '%s': killing process %s", self.name, proc.pid)
            proc.kill()
