"""
XML property files for the application configuration and the VMs.

The on-disk format is the Java properties DTD, so files written by older
releases of the application load unchanged:

    <?xml version="1.0" encoding="UTF-8" standalone="no"?>
    <!DOCTYPE properties SYSTEM "http://java.sun.com/dtd/properties.dtd">
    <properties>
    <comment>Version 0.6.7</comment>
    <entry key="cpus">2</entry>
    </properties>

Keys are written in alphabetical order. Keys missing from a file are
backfilled with their defaults on load.
"""

import logging
import os
import xml.etree.ElementTree as ET
from typing import Dict, Iterator, List, Optional, Tuple
from xml.sax.saxutils import escape, quoteattr

from qemujuicy import VERSION_MAJOR, VERSION_MINOR, VERSION_RELEASE, __version__
from qemujuicy.errors import ConfigError

logger = logging.getLogger(__name__)

XML_HEADER = (
    '<?xml version="1.0" encoding="UTF-8" standalone="no"?>\n'
    '<!DOCTYPE properties SYSTEM "http://java.sun.com/dtd/properties.dtd">\n'
)


def read_xml(path: str) -> Dict[str, str]:
    try:
        root = ET.parse(path).getroot()
    except (OSError, ET.ParseError) as e:
        raise ConfigError(f"Cannot load properties from file '{path}': {e}") from e
    if root.tag != "properties":
        raise ConfigError(f"'{path}' is not a properties file")
    values = {}
    for entry in root.iter("entry"):
        key = entry.get("key")
        if key is not None:
            values[key] = entry.text or ""
    return values


def write_xml(path: str, values: Dict[str, str], comment: Optional[str] = None):
    lines = [XML_HEADER, "<properties>\n"]
    if comment is not None:
        lines.append(f"<comment>{escape(comment)}</comment>\n")
    for key in sorted(values):
        lines.append(f"<entry key={quoteattr(key)}>{escape(values[key])}</entry>\n")
    lines.append("</properties>\n")
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.writelines(lines)
    except OSError as e:
        raise ConfigError(f"Cannot write properties to file '{path}': {e}") from e


def qemu_text_to_property(text: str) -> str:
    """Collapse multi-line text of a text field into a one-line property value."""
    return " ".join(text.split())


class PropertyFile:
    DEFAULTS: Dict[str, str] = {}

    def __init__(self, path: str, values: Optional[Dict[str, str]] = None):
        self.path = path
        self._values: Dict[str, str] = dict(values or {})
        self.check_defaults()

    @classmethod
    def load(cls, path: str):
        if not os.path.isfile(path):
            logger.error("Cannot load properties from file '%s'", path)
            raise ConfigError(f"Cannot load properties from file '{path}'")
        return cls(path, read_xml(path))

    def check_defaults(self):
        for key, value in self.DEFAULTS.items():
            self._values.setdefault(key, value)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self._values.get(key, default)

    def get_bool(self, key: str) -> bool:
        return (self._values.get(key) or "").strip().lower() == "true"

    def get_int(self, key: str, default: int = 0) -> int:
        try:
            return int((self._values.get(key) or "").strip())
        except ValueError:
            return default

    def set(self, key: str, value):
        if isinstance(value, bool):
            value = "true" if value else "false"
        self._values[key] = str(value)

    def remove(self, key: str):
        self._values.pop(key, None)

    def __contains__(self, key) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._values))

    def as_dict(self) -> Dict[str, str]:
        return dict(self._values)

    def store(self):
        write_xml(self.path, self._values, f"Version {__version__}")

    def log(self, text: str):
        lines = [text] + [f"\t{key} -> {self._values[key]}" for key in sorted(self._values)]
        logger.debug("\n".join(lines))


class AppProperties(PropertyFile):
    VERSION = "version"
    VERSION_MAJOR = "version.major"
    VERSION_MINOR = "version.minor"
    VERSION_RELEASE = "version.release"
    DEFAULT_CPUS = "cpus"
    DEFAULT_DISK_SIZE = "disk.size.GB"
    DEFAULT_MEM = "memoryMB"
    GIVE_HINTS = "give.hints"
    INSTALL_DIR = "install.dir"
    LOOK_AND_FEEL = "lookandfeel"
    QEMU_CMD = "qemu.command."
    QEMU_IMG = "qemu.image"
    VERBOSE = "verbose"
    VM_DISK_PATH = "vm.disk.path"
    VM_FILENAME = "vm.filename."

    MAX_QEMU_COMMANDS = 10

    # edited on the general settings page
    SETTINGS_KEYS = (DEFAULT_CPUS, DEFAULT_DISK_SIZE, DEFAULT_MEM, GIVE_HINTS, LOOK_AND_FEEL, VERBOSE, VM_DISK_PATH)

    DEFAULTS = {
        DEFAULT_CPUS: "2",
        DEFAULT_DISK_SIZE: "30",
        DEFAULT_MEM: "1000",
        GIVE_HINTS: "true",
        INSTALL_DIR: "",
        LOOK_AND_FEEL: "Fusion",
        VERBOSE: "true",
        VM_DISK_PATH: "",
    }

    @classmethod
    def open(cls, path: str) -> "AppProperties":
        """Load the configuration file, or create it with the defaults."""
        if os.path.isfile(path):
            return cls.load(path)
        props = cls(path)
        props.set(cls.VERSION, __version__)
        props.set(cls.VERSION_MAJOR, VERSION_MAJOR)
        props.set(cls.VERSION_MINOR, VERSION_MINOR)
        props.set(cls.VERSION_RELEASE, VERSION_RELEASE)
        props.store()
        return props

    @property
    def qemu_img(self) -> str:
        return self.get(self.QEMU_IMG) or ""

    def qemu_commands(self) -> List[str]:
        commands = []
        for i in range(self.MAX_QEMU_COMMANDS):
            cmd = self.get(self.QEMU_CMD + str(i))
            if cmd is None or not cmd.strip():
                break
            commands.append(cmd)
        return commands

    def set_qemu_commands(self, commands: List[str]):
        for i in range(self.MAX_QEMU_COMMANDS):
            self.remove(self.QEMU_CMD + str(i))
        for i, cmd in enumerate(commands[:self.MAX_QEMU_COMMANDS]):
            self.set(self.QEMU_CMD + str(i), cmd)

    def clear_qemu_installation(self):
        self.remove(self.QEMU_IMG)
        self.set_qemu_commands([])

    def qemu_installation(self) -> Tuple[str, List[str]]:
        return self.qemu_img, self.qemu_commands()

    def restore_qemu_installation(self, installation: Tuple[str, List[str]]):
        """Puts back an installation saved with qemu_installation()."""
        qemu_img, commands = installation
        if qemu_img:
            self.set(self.QEMU_IMG, qemu_img)
        else:
            self.remove(self.QEMU_IMG)
        self.set_qemu_commands(commands)

    @property
    def give_hints(self) -> bool:
        return self.get_bool(self.GIVE_HINTS)

    def hint_text(self, hint: Optional[str]) -> Optional[str]:
        """
        The status bar text for a hint. An empty hint clears the status bar
        (""), any other hint is shown only with give.hints on; None leaves the
        status bar as it is.
        """
        if not hint or not hint.strip():
            return ""
        return hint if self.give_hints else None

    def apply_settings(self, changed: Dict[str, object]) -> List[str]:
        """Sets and stores the general settings, returns the keys whose value changed."""
        for key in changed:
            if key not in self.SETTINGS_KEYS:
                raise ConfigError(f"'{key}' is not a general setting")
        keys = []
        for key, value in changed.items():
            old = self.get(key)
            self.set(key, value)
            if self.get(key) != old:
                logger.info("%s -> %s", key, self.get(key))
                keys.append(key)
        if keys:
            self.store()
        return keys

    def vm_filenames(self) -> List[str]:
        filenames = []
        while True:
            name = self.get(self.VM_FILENAME + str(len(filenames)))
            if name is None:
                return filenames
            filenames.append(name)

    def set_vm_filenames(self, filenames: List[str]):
        i = len(filenames)
        while self.VM_FILENAME + str(i) in self:
            self.remove(self.VM_FILENAME + str(i))
            i += 1
        for i, name in enumerate(filenames):
            self.set(self.VM_FILENAME + str(i), name)


class VMProperties(PropertyFile):
    # do not forget to add new keys to DEFAULTS
    ACCELERATOR = "accelerator"
    CPUS = "cpus"
    CREATION_TYPICAL = "creation.typical"
    DRIVE_CD_DVD_NAME = "drive.cd.name"
    DRIVE_HDA_NAME = "drive.hda.name"
    DRIVE_HDA_SIZE_GB = "drive.hda.size.GB"
    DRIVE_HDB_NAME = "drive.hdb.name"
    DRIVE_HDD_NAME = "drive.hdd.name"
    EXTRA_PARAMETERS = "extra.parameters"
    FLOPPY_A_NAME = "floppy.a.name"
    FLOPPY_B_NAME = "floppy.b.name"
    FULL_QEMU_DEFINITION = "full.qemu.definition"
    FULL_QEMU_DEFINITION_CMD = "full.qemu.definition.command"
    ICON_PATH = "icon.path"
    INSTALLED_FROM_PATH = "installed.from.path"
    LOCALTIME = "localtime"
    NETWORK = "network"
    OS = "os"
    QEMU_BOOT_MENU = "qemu.boot.menu"
    SOUND = "sound"
    VERBOSE = "verbose"
    VM_FILENAME = "vm.filename"
    VM_MEMORY_MB = "vm.memory.MB"
    VM_NAME = "vm.name"
    VM_NAME_SAFE = "vm.name.safe"
    VM_QEMU = "vm.qemu"

    DEFAULTS = {
        ACCELERATOR: "",
        CPUS: "",
        CREATION_TYPICAL: "",
        DRIVE_CD_DVD_NAME: "",
        DRIVE_HDA_NAME: "",
        DRIVE_HDA_SIZE_GB: "",
        DRIVE_HDB_NAME: "",
        DRIVE_HDD_NAME: "",
        EXTRA_PARAMETERS: "",
        FLOPPY_A_NAME: "",
        FLOPPY_B_NAME: "",
        FULL_QEMU_DEFINITION: "false",
        FULL_QEMU_DEFINITION_CMD: "",
        ICON_PATH: "",
        INSTALLED_FROM_PATH: "",
        LOCALTIME: "false",
        NETWORK: "",
        OS: "",
        QEMU_BOOT_MENU: "",
        SOUND: "",
        VERBOSE: "false",
        VM_FILENAME: "",
        VM_MEMORY_MB: "1000",
        VM_NAME: "",
        VM_NAME_SAFE: "",
        VM_QEMU: "qemu-system-x86_64",
    }
