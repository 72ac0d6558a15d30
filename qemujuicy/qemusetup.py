"""
QEMU setup: looking for a usable QEMU installation.

On the first start (no configuration file) the installation is probed in the
default location and the setup wizard is shown. On later starts the stored
paths are checked again; if any of them fails, the stored installation is
dropped and the first start setup runs again.
"""

import enum
import logging
import os
from dataclasses import dataclass
from typing import Callable, List, Optional

from qemujuicy import APP_NAME
from qemujuicy.options import ARCHITECTURES
from qemujuicy.procexec import ProcessExecutor
from qemujuicy.properties import AppProperties

logger = logging.getLogger(__name__)

QEMU_IMG = "qemu-img"
PROBE_TIMEOUT = 10.0

INSTALL_MSG = "Searching for a QEMU installation:"
INSTALL_FAIL_MSG = "No QEMU found, please install QEMU first or use the wizard to select an installation"
INSTALL_OK_MSG = "QEMU installation found (you can select another installation)"
INSTALL_DISK_MSG = "Success: a QEMU program for VM disk creation found"
INSTALL_EMULATOR_MSG = "Success: QEMU emulator(s) to run VMs found"
INSTALL_FAIL_DISK_MSG = "Fail: no program for VM disk creation found"
INSTALL_FAIL_EMULATOR_MSG = "Fail: no QEMU emulator to run VMs found"
INSTALL_HINT_MSG = f"Please follow the wizard to setup {APP_NAME}"
FIRST_VM_HINT_MSG = "Read the help (About) or create the first virtual machine with 'New VM'"


class ProbeState(enum.Enum):
    UNPROBED = "unprobed"
    PROBING = "probing"
    FOUND = "found"
    NOT_FOUND = "not found"


@dataclass
class ProbeResult:
    command: str
    state: ProbeState = ProbeState.UNPROBED
    output: str = ""
    version: str = ""

    @property
    def found(self) -> bool:
        return self.state == ProbeState.FOUND


def is_qemu_output(output: str) -> bool:
    text = (output or "").lower()
    return "qemu" in text and "version" in text


def scan_version(output: str) -> str:
    """'QEMU emulator version 6.2.0 (Debian)' -> 'version 6.2.0'"""
    index = (output or "").lower().find("version")
    if index < 0:
        return ""
    return " ".join(output[index:].split()[:2])


def probe(command: str, timeout: float = PROBE_TIMEOUT, executor=ProcessExecutor) -> ProbeResult:
    result = ProbeResult(command, ProbeState.PROBING)
    logger.info("looking for QEMU, trying command '%s'", command)
    try:
        result.output = executor(command, "--version", timeout=timeout).output
    except OSError as e:
        logger.error("QEMU '%s' not found: %s", command, e)
        result.state = ProbeState.NOT_FOUND
        return result
    logger.info("command output:\n%s", result.output)
    if is_qemu_output(result.output):
        logger.info("qemu found: %s", command)
        result.state = ProbeState.FOUND
        result.version = scan_version(result.output)
    else:
        logger.error("QEMU '%s' not found: no version in output", command)
        result.state = ProbeState.NOT_FOUND
    return result


def default_directory(os_name: str, environ=None) -> str:
    """Linux/Unix find QEMU by PATH, Windows users may not have set it."""
    if os_name != "windows":
        return ""
    environ = os.environ if environ is None else environ
    return os.path.join(environ.get("ProgramFiles", ""), "qemu", "")


class QemuSetup:
    def __init__(self, properties: AppProperties, first_start: bool, os_name: str = "",
                 show_wizard: Optional[Callable[["QemuSetup"], None]] = None,
                 probe: Callable[[str], ProbeResult] = probe, environ=None):
        self.properties = properties
        self.first_start = first_start
        self.os_name = os_name
        self.show_wizard = show_wizard
        self.probe = probe
        self.environ = environ
        self.state = ProbeState.UNPROBED
        self.qemu_img: Optional[str] = None
        self.qemu_img_version: Optional[str] = None
        self.qemu_commands: List[str] = []
        self.versions: List[str] = []
        self.results: List[ProbeResult] = []
        # status bar hint for the main window, set by the first setup
        self.hint: Optional[str] = None

    @property
    def is_installed(self) -> bool:
        return bool(self.qemu_img) and bool(self.qemu_commands)

    def _probe(self, command: str) -> ProbeResult:
        result = self.probe(command)
        self.results.append(result)
        return result

    def check_installation(self, directory: str = "") -> bool:
        self.state = ProbeState.PROBING
        self.results = []
        self.qemu_img = None
        self.qemu_img_version = None
        self.qemu_commands = []
        self.versions = []
        # qemu-img is needed to create VM disks
        result = self._probe(directory + QEMU_IMG)
        if result.found:
            self.qemu_img = result.command
            self.qemu_img_version = result.version
            self.properties.set(AppProperties.QEMU_IMG, self.qemu_img)
        else:
            self.properties.remove(AppProperties.QEMU_IMG)
        for arch in ARCHITECTURES:
            result = self._probe(directory + arch.qemu_cmd)
            if result.found:
                self.qemu_commands.append(result.command)
                self.versions.append(result.version)
        self.properties.set_qemu_commands(self.qemu_commands)
        self.state = ProbeState.FOUND if self.is_installed else ProbeState.NOT_FOUND
        return self.is_installed

    def first_setup(self):
        logger.info("first setup ...")
        self.check_installation(default_directory(self.os_name, self.environ))
        self.hint = FIRST_VM_HINT_MSG
        if self.show_wizard is not None:
            self.show_wizard(self)

    def revalidate(self) -> bool:
        """Checks the stored installation again, False if any stored path fails."""
        self.state = ProbeState.PROBING
        self.results = []
        installed = True
        self.qemu_img = self.properties.qemu_img or None
        self.qemu_img_version = None
        self.qemu_commands = []
        self.versions = []
        result = self._probe(self.qemu_img) if self.qemu_img else None
        if result is not None and result.found:
            self.qemu_img_version = result.version
        else:
            self.qemu_img = None
            installed = False
        for cmd in self.properties.qemu_commands():
            result = self._probe(cmd)
            if not result.found:
                installed = False
            self.qemu_commands.append(cmd)
            self.versions.append(result.version)
        if not self.qemu_commands:
            installed = False
        self.state = ProbeState.FOUND if installed else ProbeState.NOT_FOUND
        return installed

    def start(self) -> bool:
        """Runs the setup, returns True if the setup wizard has been shown."""
        if self.first_start:
            # usually a fresh installation
            self.first_setup()
            self.first_start = False
            return True
        if not self.revalidate():
            logger.error("QEMU installation is not valid anymore, running the first setup")
            self.properties.clear_qemu_installation()
            self.first_setup()
            return True
        logger.info("QEMU installation ok: %s, %s", self.qemu_img, ", ".join(self.qemu_commands))
        return False
