"""
Actions related to the QEMU programs: building the emulator command line
of a VM, creating disk images and launching/watching emulator processes.
"""

import logging
import os
import shlex
import subprocess
import threading
import time
from typing import Callable, List, Optional, Sequence, Union

from qemujuicy.errors import LaunchError
from qemujuicy.options import NONE_ADVANCED, accelerator_option, cpu_count, sound_parameters
from qemujuicy.procexec import run_process
from qemujuicy.properties import AppProperties
from qemujuicy.vm import VM

logger = logging.getLogger(__name__)

FIXED_MAC = "52:54:00:12:34:56"
WATCH_INTERVAL = 0.2
DISK_FORMAT = "qcow2"


def create_command_list(text: str) -> List[str]:
    return text.split() if text else []


def add_extra_parameters(cmd: List[str], vm: VM) -> List[str]:
    cmd += create_command_list(vm.extra_parameters)
    return cmd


def to_command_string(cmd: Sequence[str]) -> str:
    """One line, shell quoted, ready for the clipboard."""
    return " ".join(shlex.quote(c) for c in cmd)


def _option_lines(cmd: Sequence[str]) -> List[List[str]]:
    # an option starts a new line, its values follow on the same line
    lines: List[List[str]] = []
    for token in cmd:
        if not lines or token.startswith("-"):
            lines.append([token])
        else:
            lines[-1].append(token)
    return lines


def to_text_area_string(cmd: Union[str, Sequence[str]]) -> str:
    if isinstance(cmd, str):
        cmd = create_command_list(cmd)
    return "\n".join(" ".join(line) for line in _option_lines(cmd))


def to_command_string_store(cmd: Sequence[str], separate_lines: bool) -> str:
    """A shell script running the command, optionally one option per line."""
    if separate_lines:
        quoted = [to_command_string(line) for line in _option_lines(cmd)]
        body = " \\\n    ".join(quoted)
    else:
        body = to_command_string(cmd)
    return f"#!/bin/sh\n{body}\n"


def _program_name(path: str) -> str:
    name = os.path.basename(path)
    return name[:-4] if name.lower().endswith(".exe") else name


class VmWatcher(threading.Thread):
    """Polls a VM process until it exits, then resets the VM running state once."""

    def __init__(self, vm: VM, proc: subprocess.Popen, on_stopped: Optional[Callable[[VM], None]] = None,
                 interval: float = WATCH_INTERVAL, sleep: Callable[[float], None] = time.sleep):
        super().__init__(name=f"watch-{vm.name_safe}", daemon=True)
        self.vm = vm
        self.proc = proc
        self.on_stopped = on_stopped
        self.interval = interval
        self.sleep = sleep
        self.exit_code: Optional[int] = None

    def run(self):
        while self.proc.poll() is None:
            self.sleep(self.interval)
        self.exit_code = self.proc.returncode
        logger.info("VM '%s' stopped, exit code %s", self.vm.name, self.exit_code)
        if self.vm.clear_process() and self.on_stopped is not None:
            self.on_stopped(self.vm)


class Qemu:
    def __init__(self, properties: AppProperties, popen=subprocess.Popen, poll_interval: float = WATCH_INTERVAL,
                 on_vm_stopped: Optional[Callable[[VM], None]] = None):
        self.properties = properties
        self.popen = popen
        self.poll_interval = poll_interval
        self.on_vm_stopped = on_vm_stopped

    def emulator_path(self, vm: VM) -> str:
        """The discovered path of the VM's emulator, or its plain command name."""
        name = vm.qemu_cmd
        for path in self.properties.qemu_commands():
            if _program_name(path) == name:
                return path
        return name

    def build_base_command(self, vm: VM, install_path: Optional[str] = None) -> List[str]:
        """The command without the extra parameters, as shown on the Advanced tab."""
        if vm.full_definition and vm.full_definition_command.strip():
            return create_command_list(vm.full_definition_command)
        cmd = [self.emulator_path(vm)]
        accel = accelerator_option(vm.accelerator)
        if accel is not None:
            cmd += ["-machine", f"accel={accel}"]
        cpus = vm.cpus.strip()
        if cpus and cpus != NONE_ADVANCED and cpu_count(cpus) > 0:
            cmd += ["-smp", str(cpu_count(cpus))]
        cmd += ["-m", f"{vm.memory_mb}M"]
        cmd += ["-drive", f"file={vm.disk_path},index=0,media=disk"]
        boot = "order=c"
        if install_path:
            cmd += ["-drive", f"file={install_path},index=3,media=cdrom"]
            boot = "order=cd,once=d"
        if vm.boot_menu:
            boot += ",menu=on"
        cmd += ["-boot", boot]
        if vm.network_enabled:
            cmd += ["-nic", f"user,ipv6=off,model=e1000,mac={FIXED_MAC}"]
        else:
            cmd += ["-nic", "none"]
        cmd += ["-name", vm.name_safe]
        cmd += sound_parameters(vm.sound)
        return cmd

    def build_command(self, vm: VM, install_path: Optional[str] = None) -> List[str]:
        return add_extra_parameters(self.build_base_command(vm, install_path), vm)

    def create_disk_image(self, vm: VM, qemu_img: Optional[str] = None) -> bool:
        qemu_img = qemu_img or self.properties.qemu_img or "qemu-img"
        output = run_process(qemu_img, "create", "-f", DISK_FORMAT, vm.disk_path, f"{vm.disk_size_gb}G")
        return output is not None

    def launch(self, vm: VM, cmd: List[str]) -> VmWatcher:
        logger.info("VM '%s': starting %s", vm.name, to_command_string(cmd))
        vm.verbose(to_command_string(cmd))
        try:
            proc = self.popen(cmd, stdin=subprocess.DEVNULL)
        except OSError as e:
            logger.error("Cannot start VM '%s': %s", vm.name, e)
            raise LaunchError(cmd, e) from e
        vm.attach_process(proc)
        watcher = VmWatcher(vm, proc, self.on_vm_stopped, self.poll_interval)
        watcher.start()
        return watcher

    def run_vm(self, vm: VM, install_path: Optional[str] = None) -> VmWatcher:
        return self.launch(vm, self.build_command(vm, install_path))
