import pytest

from qemujuicy import options
from qemujuicy.options import BEST_GUESS, NONE_ADVANCED
from qemujuicy.properties import VMProperties
from qemujuicy.vm import VM, safe_name

from conftest import FakeProc


def test_safe_name():
    assert safe_name("My Test VM") == "My_Test_VM"


def test_vm_defaults(make_vm):
    vm = make_vm("Debian 12")
    assert vm.name_safe == "Debian_12"
    assert vm.memory_mb == 1000
    assert vm.qemu_cmd == "qemu-system-x86_64"
    assert vm.network_enabled
    assert not vm.boot_menu
    assert not vm.is_verbose
    assert vm.disk_size_gb == 30
    assert str(vm) == "Debian 12"


def test_vm_devices(make_vm):
    vm = make_vm(**{VMProperties.DRIVE_CD_DVD_NAME: "/isos/x.iso"})
    assert [(d.key, value) for d, value in vm.devices()] == [("HDA", "Test_VM.qcow2"), ("CD_DVD", "/isos/x.iso")]


def test_vm_verbose_prints(make_vm, capsys):
    vm = make_vm(**{VMProperties.VERBOSE: "true"})
    vm.verbose("hello")
    assert capsys.readouterr().out == "VM 'Test VM': hello\n"
    vm.set_property(VMProperties.VERBOSE, False)
    vm.verbose("hello")
    assert capsys.readouterr().out == ""


def test_set_property_store(make_vm):
    vm = make_vm()
    vm.set_property(VMProperties.LOCALTIME, True, store=True)
    assert VM.from_file(vm.path).properties.get_bool(VMProperties.LOCALTIME)


def test_clear_process_single_transition(make_vm):
    vm = make_vm()
    vm.attach_process(FakeProc(alive_polls=10))
    assert vm.is_running
    assert vm.clear_process() is True
    assert vm.clear_process() is False
    assert vm.proc is None


def test_stop_and_kill(make_vm):
    vm = make_vm()
    proc = FakeProc(alive_polls=10)
    vm.attach_process(proc)
    vm.stop()
    vm.kill()
    assert proc.terminated and proc.killed


def test_accelerator_option():
    assert options.accelerator_option("") == "kvm:tcg"
    assert options.accelerator_option(BEST_GUESS) == "kvm:tcg"
    assert options.accelerator_option("unknown") == "kvm:tcg"
    assert options.accelerator_option("KVM") == "kvm"
    assert options.accelerator_option(NONE_ADVANCED) is None


@pytest.mark.parametrize("value, expected", [("4", 4), (" 2 ", 2), ("", 0), (NONE_ADVANCED, 0), ("-1", 0)])
def test_cpu_count(value, expected):
    assert options.cpu_count(value) == expected


def test_sound_lookup():
    assert options.sound_by_key("") is options.SOUNDS[0]
    assert options.sound_parameters("NONE") == []
    assert options.sound_parameters("ALSA_HDA")[0] == "-audiodev"


def test_architecture_table():
    assert options.ARCHITECTURES[0].qemu_cmd == "qemu-system-x86_64"
    assert options.architecture_for_cmd("qemu-system-arm").name == "ARM"
    assert options.architecture_for_cmd("nope") is None
    assert len({a.qemu_cmd for a in options.ARCHITECTURES}) == len(options.ARCHITECTURES)


def test_vm_verbose_silent_in_quiet_mode(make_vm, capsys):
    vm = make_vm(**{VMProperties.VERBOSE: "true"})
    vm.echo = False
    vm.verbose("hello")
    assert capsys.readouterr().out == ""
