# conftest.py
import logging
import time
import types
from typing import List, Optional

import pytest

from qemujuicy.logs import LOGGER_NAME
from qemujuicy.properties import AppProperties, VMProperties
from qemujuicy.vm import VM


# ----------------------
# Test Utilities / Fakes
# ----------------------
class FakeProc:
    """Popen stand-in that reports alive for `alive_polls` calls to poll()."""

    def __init__(self, alive_polls: int = 0, returncode: int = 0):
        self.alive_polls = alive_polls
        self.poll_calls = 0
        self.final_returncode = returncode
        self.returncode: Optional[int] = None
        self.pid = 4711
        self.terminated = False
        self.killed = False

    def poll(self):
        self.poll_calls += 1
        if self.poll_calls > self.alive_polls:
            self.returncode = self.final_returncode
        return self.returncode

    def terminate(self):
        self.terminated = True

    def kill(self):
        self.killed = True


class FakePopen:
    """Records launched commands; raises `error` instead of spawning if set."""

    def __init__(self, alive_polls: int = 0, error: Optional[OSError] = None):
        self.alive_polls = alive_polls
        self.error = error
        self.calls: List[list] = []
        self.procs: List[FakeProc] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(list(cmd))
        if self.error is not None:
            raise self.error
        proc = FakeProc(self.alive_polls)
        self.procs.append(proc)
        return proc


def fake_executor(outputs):
    """ProcessExecutor stand-in: maps a command to its output, OSError if unknown."""

    def _make(*command, timeout=None):
        if command[0] not in outputs:
            raise FileNotFoundError(command[0])
        return types.SimpleNamespace(output=outputs[command[0]], exit_code=0)

    return _make


def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


# ----------------------
# Shared Fixtures
# ----------------------
@pytest.fixture
def app_props(tmp_path) -> AppProperties:
    vm_dir = tmp_path / "vm"
    vm_dir.mkdir()
    props = AppProperties.open(str(tmp_path / "config.xml"))
    props.set(AppProperties.VM_DISK_PATH, str(vm_dir))
    return props


@pytest.fixture
def make_vm(tmp_path):
    """Factory for VMs stored in tmp_path/vm, properties given as keyword pairs."""

    def _make(name: str = "Test VM", **values) -> VM:
        vm_dir = tmp_path / "vm"
        vm_dir.mkdir(exist_ok=True)
        safe = name.replace(" ", "_")
        props = VMProperties(str(vm_dir / f"{safe}.xml"))
        props.set(VMProperties.VM_NAME, name)
        props.set(VMProperties.VM_NAME_SAFE, safe)
        props.set(VMProperties.VM_FILENAME, f"{safe}.xml")
        props.set(VMProperties.DRIVE_HDA_NAME, f"{safe}.qcow2")
        props.set(VMProperties.DRIVE_HDA_SIZE_GB, "30")
        props.set(VMProperties.CPUS, "2")
        for key, value in values.items():
            props.set(key, value)
        return VM(props)

    return _make


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
