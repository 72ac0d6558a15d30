import shlex

import pytest

from qemujuicy import qemu as qemu_module
from qemujuicy.errors import LaunchError
from qemujuicy.options import BEST_GUESS, NONE_ADVANCED
from qemujuicy.properties import VMProperties
from qemujuicy.qemu import (FIXED_MAC, Qemu, VmWatcher, to_command_string, to_command_string_store,
                            to_text_area_string)
from qemujuicy.vm import VM

from conftest import FakePopen, FakeProc, wait_until


def expected_default(vm, boot="order=c", cdrom=None):
    cmd = [
        "qemu-system-x86_64",
        "-machine", "accel=kvm:tcg",
        "-smp", "2",
        "-m", "1000M",
        "-drive", f"file={vm.disk_path},index=0,media=disk",
    ]
    if cdrom:
        cmd += ["-drive", f"file={cdrom},index=3,media=cdrom"]
    cmd += [
        "-boot", boot,
        "-nic", f"user,ipv6=off,model=e1000,mac={FIXED_MAC}",
        "-name", vm.name_safe,
    ]
    return cmd


def test_build_command_fixed_order(app_props, make_vm):
    vm = make_vm()
    q = Qemu(app_props)
    assert q.build_command(vm) == expected_default(vm)
    # deterministic
    assert q.build_command(vm) == q.build_command(vm)


def test_build_command_install_variant(app_props, make_vm):
    vm = make_vm()
    cmd = Qemu(app_props).build_command(vm, "/isos/debian.iso")
    assert cmd == expected_default(vm, boot="order=cd,once=d", cdrom="/isos/debian.iso")


@pytest.mark.parametrize("install_path, boot", [(None, "order=c,menu=on"), ("/x.iso", "order=cd,once=d,menu=on")])
def test_boot_menu_flag(app_props, make_vm, install_path, boot):
    vm = make_vm(**{VMProperties.QEMU_BOOT_MENU: "true"})
    cmd = Qemu(app_props).build_command(vm, install_path)
    assert cmd[cmd.index("-boot") + 1] == boot


def test_extra_parameters_appended_last(app_props, make_vm):
    vm = make_vm(**{VMProperties.EXTRA_PARAMETERS: "-vga std  -usb"})
    cmd = Qemu(app_props).build_command(vm)
    assert cmd == expected_default(vm) + ["-vga", "std", "-usb"]


def test_custom_definition_overrides_everything(app_props, make_vm):
    vm = make_vm(**{
        VMProperties.FULL_QEMU_DEFINITION: "true",
        VMProperties.FULL_QEMU_DEFINITION_CMD: "qemu-system-arm  -M virt\n-m 512",
        VMProperties.EXTRA_PARAMETERS: "-s",
        VMProperties.ACCELERATOR: "KVM",
        VMProperties.QEMU_BOOT_MENU: "true",
    })
    assert Qemu(app_props).build_command(vm) == ["qemu-system-arm", "-M", "virt", "-m", "512", "-s"]


def test_custom_definition_empty_command_is_ignored(app_props, make_vm):
    vm = make_vm(**{VMProperties.FULL_QEMU_DEFINITION: "true", VMProperties.FULL_QEMU_DEFINITION_CMD: "  "})
    assert Qemu(app_props).build_command(vm) == expected_default(vm)


def test_accelerator_and_cpus_omitted_for_advanced(app_props, make_vm):
    vm = make_vm(**{VMProperties.ACCELERATOR: NONE_ADVANCED, VMProperties.CPUS: NONE_ADVANCED})
    cmd = Qemu(app_props).build_command(vm)
    assert "-machine" not in cmd
    assert "-smp" not in cmd
    assert cmd[1:3] == ["-m", "1000M"]


def test_accelerator_selected(app_props, make_vm):
    vm = make_vm(**{VMProperties.ACCELERATOR: "TCG"})
    cmd = Qemu(app_props).build_command(vm)
    assert cmd[1:3] == ["-machine", "accel=tcg"]
    vm.set_property(VMProperties.ACCELERATOR, BEST_GUESS)
    assert Qemu(app_props).build_command(vm)[1:3] == ["-machine", "accel=kvm:tcg"]


def test_network_disabled(app_props, make_vm):
    vm = make_vm(**{VMProperties.NETWORK: "false"})
    cmd = Qemu(app_props).build_command(vm)
    assert cmd[cmd.index("-nic") + 1] == "none"


def test_sound_parameters_after_name(app_props, make_vm):
    vm = make_vm(**{VMProperties.SOUND: "AC97", VMProperties.EXTRA_PARAMETERS: "-s"})
    cmd = Qemu(app_props).build_command(vm)
    name_at = cmd.index("-name")
    assert cmd[name_at + 2:] == ["-audiodev", "driver=pa,id=pa1", "-device", "AC97,audiodev=pa1", "-s"]


def test_emulator_path_from_discovered_commands(app_props, make_vm):
    app_props.set_qemu_commands(["/opt/qemu/qemu-system-i386", "/opt/qemu/qemu-system-x86_64.exe"])
    vm = make_vm()
    assert Qemu(app_props).build_command(vm)[0] == "/opt/qemu/qemu-system-x86_64.exe"
    vm.set_property(VMProperties.VM_QEMU, "qemu-system-aarch64")
    assert Qemu(app_props).build_command(vm)[0] == "qemu-system-aarch64"


def test_text_area_string_one_option_per_line():
    cmd = ["qemu-system-x86_64", "-m", "1000M", "-name", "a", "-snapshot"]
    assert to_text_area_string(cmd) == "qemu-system-x86_64\n-m 1000M\n-name a\n-snapshot"
    assert to_text_area_string("qemu-system-x86_64 -m 1000M") == "qemu-system-x86_64\n-m 1000M"


def test_command_string_quotes_spaces():
    assert to_command_string(["qemu", "-name", "my vm"]) == "qemu -name 'my vm'"


def test_command_string_store():
    cmd = ["qemu", "-m", "512M", "-name", "vm"]
    assert to_command_string_store(cmd, False) == "#!/bin/sh\nqemu -m 512M -name vm\n"
    assert to_command_string_store(cmd, True) == "#!/bin/sh\nqemu \\\n    -m 512M \\\n    -name vm\n"


@pytest.mark.parametrize("separate_lines", [True, False])
def test_command_string_store_keeps_disk_path_with_space(app_props, tmp_path, separate_lines):
    vm_dir = tmp_path / "my vms"
    vm_dir.mkdir()
    props = VMProperties(str(vm_dir / "A.xml"))
    props.set(VMProperties.VM_NAME, "A")
    props.set(VMProperties.DRIVE_HDA_NAME, "A.qcow2")
    props.set(VMProperties.EXTRA_PARAMETERS, "-snapshot")
    cmd = Qemu(app_props).build_command(VM(props))
    assert f"file={vm_dir / 'A.qcow2'},index=0,media=disk" in cmd
    script = to_command_string_store(cmd, separate_lines)
    header, body = script.split("\n", 1)
    assert header == "#!/bin/sh"
    assert shlex.split(body) == cmd


def test_create_disk_image(app_props, make_vm, monkeypatch):
    calls = []
    monkeypatch.setattr(qemu_module, "run_process", lambda *cmd: calls.append(cmd) or "")
    app_props.set("qemu.image", "/usr/bin/qemu-img")
    vm = make_vm()
    assert Qemu(app_props).create_disk_image(vm)
    assert calls == [("/usr/bin/qemu-img", "create", "-f", "qcow2", vm.disk_path, "30G")]


def test_create_disk_image_failure(app_props, make_vm, monkeypatch):
    monkeypatch.setattr(qemu_module, "run_process", lambda *cmd: None)
    assert not Qemu(app_props).create_disk_image(make_vm())


def test_launch_marks_running_and_watcher_resets(app_props, make_vm):
    stopped = []
    popen = FakePopen(alive_polls=3)
    q = Qemu(app_props, popen=popen, poll_interval=0.001, on_vm_stopped=stopped.append)
    vm = make_vm()
    watcher = q.run_vm(vm)
    watcher.join(2)
    assert popen.calls == [q.build_command(vm)]
    assert not vm.is_running
    assert vm.proc is None
    assert stopped == [vm]


def test_launch_spawn_failure_raises(app_props, make_vm):
    q = Qemu(app_props, popen=FakePopen(error=FileNotFoundError("qemu-system-x86_64")))
    vm = make_vm()
    with pytest.raises(LaunchError) as exc_info:
        q.run_vm(vm)
    assert exc_info.value.command[0] == "qemu-system-x86_64"
    assert not vm.is_running


def test_watcher_single_transition(make_vm):
    vm = make_vm()
    proc = FakeProc(alive_polls=5, returncode=3)
    vm.attach_process(proc)
    states = []
    notified = []

    def sleep(_):
        states.append(vm.is_running)

    watcher = VmWatcher(vm, proc, notified.append, sleep=sleep)
    watcher.run()
    # running during every poll before the exit, exactly one transition afterwards
    assert states == [True] * 5
    assert not vm.is_running
    assert notified == [vm]
    assert watcher.exit_code == 3


def test_watcher_thread_notifies_once(make_vm):
    vm = make_vm()
    proc = FakeProc(alive_polls=2)
    vm.attach_process(proc)
    notified = []
    VmWatcher(vm, proc, notified.append, interval=0.001).start()
    assert wait_until(lambda: notified)
    assert notified == [vm]
