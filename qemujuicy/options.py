from dataclasses import dataclass
from typing import List, Optional, Tuple

NONE_ADVANCED = "None/Advanced Tab"  # left to the user: custom definition on the Advanced tab
BEST_GUESS = "Best guess"


@dataclass(frozen=True)
class Architecture:
    name: str
    qemu_cmd: str


# ordered by estimated usage
ARCHITECTURES: Tuple[Architecture, ...] = (
    Architecture("PC x86 (64 bit)", "qemu-system-x86_64"),
    Architecture("PC i386", "qemu-system-i386"),
    Architecture("ARM64 (AArch64)", "qemu-system-aarch64"),
    Architecture("ARM", "qemu-system-arm"),
    Architecture("AVR (Arduino)", "qemu-system-avr"),
    Architecture("MIPS64", "qemu-system-mips64"),
    Architecture("PowerPC", "qemu-system-ppc64"),
    Architecture("Risc-V", "qemu-system-riscv64"),
    Architecture("SPARC64", "qemu-system-sparc64"),
)


@dataclass(frozen=True)
class Accelerator:
    name: str
    option: str


ACCELERATORS: Tuple[Accelerator, ...] = (
    Accelerator(BEST_GUESS, ""),
    Accelerator("KVM", "kvm"),
    Accelerator("TCG", "tcg"),
    Accelerator("XEN", "xen"),
    Accelerator("NVMM", "nvmm"),
    Accelerator("MacOS-HVF", "hvf"),
    Accelerator("HAX/HAXM", "hax"),
    Accelerator("WHPX", "whpx"),
    Accelerator(NONE_ADVANCED, ""),
)

CPU_COUNTS: Tuple[str, ...] = (
    "1", "2", "3", "4", "5", "6", "7", "8", "10", "12", "14", "16", "24", "32", "48", "64",
    NONE_ADVANCED,
)


@dataclass(frozen=True)
class Sound:
    key: str
    name: str
    parameters: Tuple[str, ...] = ()


SOUNDS: Tuple[Sound, ...] = (
    Sound("NONE", NONE_ADVANCED),
    Sound("ALSA_HDA", "Host Alsa, Intel High Def.", (
        "-audiodev", "alsa,id=snd0,out.try-poll=off",
        "-device", "ich9-intel-hda",
        "-device", "hda-output,audiodev=snd0")),
    Sound("PULSEAUDIO_HDA", "Pulseaudio, Intel High Def.", (
        "-audiodev", "pa,id=hda,out.mixing-engine=off",
        "-device", "intel-hda",
        "-device", "hda-output,audiodev=hda")),
    Sound("AC97", "PC, Intel AC97", (
        "-audiodev", "driver=pa,id=pa1",
        "-device", "AC97,audiodev=pa1")),
)


@dataclass(frozen=True)
class Device:
    key: str
    property_name: str
    kind: str


DEVICES: Tuple[Device, ...] = (
    Device("HDA", "drive.hda.name", "disk"),
    Device("HDB", "drive.hdb.name", "disk"),
    Device("HDD", "drive.hdd.name", "disk"),
    Device("CD_DVD", "drive.cd.name", "cdrom"),
    Device("FLOPPY_A", "floppy.a.name", "floppy"),
    Device("FLOPPY_B", "floppy.b.name", "floppy"),
)


@dataclass(frozen=True)
class GuestOS:
    key: str
    name: str


GUEST_OS_TYPES: Tuple[GuestOS, ...] = (
    GuestOS("LINUX", "Linux"),
    GuestOS("WINDOWS", "Windows"),
    GuestOS("OTHER", "Other OS"),
)


def architecture_for_cmd(qemu_cmd: str) -> Optional[Architecture]:
    for arch in ARCHITECTURES:
        if arch.qemu_cmd == qemu_cmd:
            return arch
    return None


def accelerator_by_name(name: str) -> Optional[Accelerator]:
    for accel in ACCELERATORS:
        if accel.name == name:
            return accel
    return None


def accelerator_option(name: str) -> Optional[str]:
    """
    Returns the value for "-machine accel=", or None if the accelerator is
    left to the Advanced tab. Unknown or empty names count as best guess.
    """
    accel = accelerator_by_name(name)
    if accel is None or accel.name == BEST_GUESS:
        # kvm where available, software emulation otherwise; qemu picks the first that works
        return "kvm:tcg"
    if accel.name == NONE_ADVANCED:
        return None
    return accel.option


def cpu_count(value: str) -> int:
    """The CPU count of a VM property value, 0 if none is set."""
    try:
        return max(int((value or "").strip()), 0)
    except ValueError:
        return 0


def sound_by_key(key: str) -> Sound:
    for sound in SOUNDS:
        if sound.key == key:
            return sound
    return SOUNDS[0]


def sound_parameters(key: str) -> List[str]:
    return list(sound_by_key(key).parameters)


def names(table) -> List[str]:
    return [item.name for item in table]
