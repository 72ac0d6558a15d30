import logging
import os
from typing import Callable, List, Optional, Tuple

from qemujuicy.errors import ConfigError, LaunchError, VMExistsError
from qemujuicy.properties import AppProperties, VMProperties
from qemujuicy.qemu import Qemu
from qemujuicy.vm import VM, safe_name

logger = logging.getLogger(__name__)

VM_FILE_EXT = ".xml"
DISK_FILE_EXT = ".qcow2"


class VMManager:
    """The ordered list of known VMs, stored as vm.filename.N in the configuration."""

    def __init__(self, properties: AppProperties, qemu: Qemu, vm_dir: Optional[str] = None,
                 on_state_change: Optional[Callable[[VM], None]] = None, verbose: bool = True):
        self.properties = properties
        self.verbose = verbose
        self.qemu = qemu
        self.vm_dir = vm_dir or properties.get(AppProperties.VM_DISK_PATH) or ""
        self.on_state_change = on_state_change
        self.vms: List[VM] = []
        self.load_errors: List[Tuple[str, ConfigError]] = []

    def __len__(self):
        return len(self.vms)

    def __getitem__(self, index: int) -> VM:
        return self.vms[index]

    def _notify(self, vm: VM):
        if self.on_state_change is not None:
            self.on_state_change(vm)

    def load(self) -> List[VM]:
        self.vms = []
        self.load_errors = []
        for i, filename in enumerate(self.properties.vm_filenames()):
            path = os.path.join(self.vm_dir, filename)
            try:
                vm = VM.from_file(path, self.verbose)
            except ConfigError as e:
                logger.error("error loading VM from '%s': %s", path, e)
                self.load_errors.append((path, e))
                continue
            logger.info("loading VM #%d, file: '%s'", i, path)
            self.vms.append(vm)
        return self.vms

    def exists(self, name: str) -> bool:
        return any(vm.name == name for vm in self.vms)

    def _check_new_file(self, path: str):
        if os.path.exists(path):
            logger.error("A file '%s' exists already", path)
            raise VMExistsError(path)

    def new_vm_properties(self, name: str, os_key: str = "LINUX", disk_size_gb: Optional[int] = None,
                          network: bool = True, icon_path: str = "", typical: bool = True,
                          qemu_cmd: Optional[str] = None) -> VMProperties:
        """Properties of a new VM, nothing is written yet."""
        if self.exists(name):
            raise VMExistsError(name)
        name_safe = safe_name(name)
        filename = name_safe + VM_FILE_EXT
        disk_name = name_safe + DISK_FILE_EXT
        path = os.path.join(self.vm_dir, filename)
        self._check_new_file(path)
        self._check_new_file(os.path.join(self.vm_dir, disk_name))
        if disk_size_gb is None:
            disk_size_gb = self.properties.get_int(AppProperties.DEFAULT_DISK_SIZE, 30)
        props = VMProperties(path)
        props.set(VMProperties.VM_NAME, name)
        props.set(VMProperties.VM_NAME_SAFE, name_safe)
        props.set(VMProperties.VM_FILENAME, filename)
        props.set(VMProperties.DRIVE_HDA_NAME, disk_name)
        props.set(VMProperties.CREATION_TYPICAL, typical)
        props.set(VMProperties.OS, os_key)
        props.set(VMProperties.ICON_PATH, icon_path)
        props.set(VMProperties.DRIVE_HDA_SIZE_GB, disk_size_gb)
        props.set(VMProperties.NETWORK, network)
        props.set(VMProperties.CPUS, self.properties.get(AppProperties.DEFAULT_CPUS) or "")
        props.set(VMProperties.VM_MEMORY_MB, self.properties.get(AppProperties.DEFAULT_MEM) or "1000")
        if qemu_cmd:
            props.set(VMProperties.VM_QEMU, qemu_cmd)
        return props

    def create_vm(self, props: VMProperties) -> VM:
        vm = VM(props, self.verbose)
        if not self.qemu.create_disk_image(vm):
            logger.error("VM '%s': cannot create disk image '%s'", vm.name, vm.disk_path)
        logger.info("creating VM #%d, file: '%s'", len(self.vms), vm.filename)
        props.store()
        self.vms.append(vm)
        self._store_vm_list()
        return vm

    def remove_vm(self, index: int, wipe_disk: bool = False) -> VM:
        vm = self.vms.pop(index)
        logger.info("removing VM '%s'", vm.name)
        if os.path.isfile(vm.path):
            os.remove(vm.path)
        if wipe_disk and vm.disk_name.strip() and os.path.isfile(vm.disk_path):
            logger.info("VM '%s': removing file %s", vm.name, vm.disk_path)
            os.remove(vm.disk_path)
        self._store_vm_list()
        return vm

    def rename_vm(self, index: int, new_name: str) -> VM:
        vm = self.vms[index]
        new_name_safe = safe_name(new_name)
        for i, other in enumerate(self.vms):
            if i != index and (other.name == new_name or other.name_safe == new_name_safe):
                raise VMExistsError(new_name)
        logger.info("renaming VM '%s' to '%s'", vm.name, new_name)
        disk_name = vm.disk_name
        new_disk_name = ""
        if disk_name.strip():
            new_disk_name = new_name_safe + os.path.splitext(disk_name)[1]
            if os.path.exists(vm.disk_path):
                os.rename(vm.disk_path, os.path.join(vm.directory, new_disk_name))
        old_path = vm.path
        new_filename = new_name_safe + (os.path.splitext(vm.filename)[1] or VM_FILE_EXT)
        new_path = os.path.join(os.path.dirname(old_path), new_filename)
        vm.set_property(VMProperties.VM_NAME, new_name)
        vm.set_property(VMProperties.VM_NAME_SAFE, new_name_safe)
        vm.set_property(VMProperties.DRIVE_HDA_NAME, new_disk_name)
        vm.set_property(VMProperties.VM_FILENAME, new_filename)
        vm.properties.path = new_path
        vm.properties.store()
        if os.path.abspath(old_path) != os.path.abspath(new_path) and os.path.isfile(old_path):
            os.remove(old_path)
        self._store_vm_list()
        return vm

    def move_up(self, index: int) -> int:
        if index < 1 or index >= len(self.vms):
            return index
        self.vms.insert(index - 1, self.vms.pop(index))
        self._store_vm_list()
        return index - 1

    def move_down(self, index: int) -> int:
        if index < 0 or index >= len(self.vms) - 1:
            return index
        self.vms.insert(index + 1, self.vms.pop(index))
        self._store_vm_list()
        return index + 1

    def _store_vm_list(self):
        self.properties.set_vm_filenames([vm.filename for vm in self.vms])
        self.properties.store()

    def run_vm(self, vm: VM, install_path: Optional[str] = None):
        if install_path:
            # one-time installation run from an image file or DVD/CD
            vm.set_property(VMProperties.INSTALLED_FROM_PATH, install_path, store=True)
            vm.verbose(f"VM install path selected: {install_path}")
            logger.info("VM install path selected: %s", install_path)
        vm.set_running(True)
        self._notify(vm)
        try:
            return self.qemu.run_vm(vm, install_path)
        except LaunchError:
            vm.clear_process()
            self._notify(vm)
            raise

    def run_install_vm(self, vm: VM, image_path: str):
        self.properties.set(AppProperties.INSTALL_DIR, os.path.dirname(os.path.abspath(image_path)))
        self.properties.store()
        return self.run_vm(vm, image_path)

    def stop_vm(self, vm: VM, force: bool = False):
        if not vm.is_running:
            return
        if force:
            vm.kill()
        else:
            vm.stop()
