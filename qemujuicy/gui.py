import logging
import os
import sys
from typing import Optional

from PySide6 import QtCore, QtGui, QtWidgets

from qemujuicy import APP_NAME, __version__
from qemujuicy.context import AppContext
from qemujuicy.errors import ConfigError, LaunchError, VMExistsError
from qemujuicy.manager import VMManager
from qemujuicy.options import (ACCELERATORS, ARCHITECTURES, CPU_COUNTS, GUEST_OS_TYPES, NONE_ADVANCED, SOUNDS,
                               architecture_for_cmd, names, sound_by_key)
from qemujuicy.properties import AppProperties, VMProperties, qemu_text_to_property
from qemujuicy.qemu import (Qemu, add_extra_parameters, create_command_list, to_command_string,
                            to_command_string_store, to_text_area_string)
from qemujuicy.qemusetup import (FIRST_VM_HINT_MSG, INSTALL_DISK_MSG, INSTALL_EMULATOR_MSG, INSTALL_FAIL_DISK_MSG,
                                 INSTALL_FAIL_EMULATOR_MSG, INSTALL_FAIL_MSG, INSTALL_HINT_MSG, INSTALL_MSG,
                                 INSTALL_OK_MSG, QemuSetup, default_directory)
from qemujuicy.vm import VM

logger = logging.getLogger(__name__)

SETUP_CANCELED_MSG = f"Setup wizard canceled: exit {APP_NAME}"
USE_INSTALL_VM_BUTTON_HINT_MSG = "Use the Install button to install an OS once from a CD/DVD or *.iso file"


def error_dialog(parent, text: str, title: str = "Error"):
    logger.error(text)
    QtWidgets.QMessageBox.critical(parent, title, text)


class SetupDialog(QtWidgets.QDialog):
    def __init__(self, setup: QemuSetup, parent=None):
        super().__init__(parent)
        self.setup = setup
        self.setWindowTitle(f"{APP_NAME} - QEMU Setup")
        self.setMinimumSize(640, 360)
        layout = QtWidgets.QVBoxLayout(self)
        hint = QtWidgets.QLabel(INSTALL_HINT_MSG)
        hint.setWordWrap(True)
        layout.addWidget(hint)
        dir_row = QtWidgets.QHBoxLayout()
        self.dir_edit = QtWidgets.QLineEdit(default_directory(setup.os_name, setup.environ))
        self.dir_edit.setPlaceholderText("Leave blank to find QEMU by PATH or select the QEMU installation directory")
        dir_row.addWidget(self.dir_edit)
        self.browse_btn = QtWidgets.QPushButton("Browse")
        self.browse_btn.clicked.connect(self._browse)
        dir_row.addWidget(self.browse_btn)
        self.check_btn = QtWidgets.QPushButton("Check")
        self.check_btn.clicked.connect(self._check)
        dir_row.addWidget(self.check_btn)
        layout.addLayout(dir_row)
        self.install_btn = QtWidgets.QPushButton("Open QEMU Download Page")
        self.install_btn.clicked.connect(self._open_download_page)
        layout.addWidget(self.install_btn)
        self.status_text = QtWidgets.QPlainTextEdit()
        self.status_text.setReadOnly(True)
        layout.addWidget(self.status_text)
        box = QtWidgets.QDialogButtonBox(QtWidgets.QDialogButtonBox.Ok | QtWidgets.QDialogButtonBox.Cancel)
        box.accepted.connect(self.accept)
        box.rejected.connect(self.reject)
        self.ok_btn = box.button(QtWidgets.QDialogButtonBox.Ok)
        layout.addWidget(box)
        self._show_results()

    def _open_download_page(self):
        QtGui.QDesktopServices.openUrl(QtCore.QUrl("https://www.qemu.org/download/"))

    def _browse(self):
        path = QtWidgets.QFileDialog.getExistingDirectory(self, "Select the QEMU installation directory")
        if path:
            self.dir_edit.setText(os.path.join(path, ""))

    def _check(self):
        directory = self.dir_edit.text().strip()
        if directory:
            directory = os.path.join(directory, "")
        QtWidgets.QApplication.setOverrideCursor(QtCore.Qt.WaitCursor)
        try:
            self.setup.check_installation(directory)
        finally:
            QtWidgets.QApplication.restoreOverrideCursor()
        self._show_results()

    def _show_results(self):
        lines = [INSTALL_MSG]
        for result in self.setup.results:
            state = f"found, {result.version}" if result.found else "not found"
            lines.append(f"    {result.command}: {state}")
        lines.append("")
        lines.append(INSTALL_DISK_MSG if self.setup.qemu_img else INSTALL_FAIL_DISK_MSG)
        lines.append(INSTALL_EMULATOR_MSG if self.setup.qemu_commands else INSTALL_FAIL_EMULATOR_MSG)
        lines.append(INSTALL_OK_MSG if self.setup.is_installed else INSTALL_FAIL_MSG)
        self.status_text.setPlainText("\n".join(lines))
        self.ok_btn.setEnabled(self.setup.is_installed)


class NewVmDialog(QtWidgets.QDialog):
    def __init__(self, manager: VMManager, parent=None):
        super().__init__(parent)
        self.manager = manager
        self.vm_properties: Optional[VMProperties] = None
        properties = manager.properties
        self.setWindowTitle("New VM")
        self.setMinimumWidth(480)
        layout = QtWidgets.QVBoxLayout(self)
        form = QtWidgets.QFormLayout()
        self.name_edit = QtWidgets.QLineEdit()
        form.addRow("Name", self.name_edit)
        self.os_combo = QtWidgets.QComboBox()
        self.os_combo.addItems(names(GUEST_OS_TYPES))
        form.addRow("Operating System", self.os_combo)
        self.arch_combo = QtWidgets.QComboBox()
        self.arch_cmds = [os.path.basename(c) for c in properties.qemu_commands()] or [ARCHITECTURES[0].qemu_cmd]
        for cmd in self.arch_cmds:
            arch = architecture_for_cmd(cmd[:-4] if cmd.lower().endswith(".exe") else cmd)
            self.arch_combo.addItem(arch.name if arch else cmd)
        form.addRow("Architecture", self.arch_combo)
        self.disk_spin = QtWidgets.QSpinBox()
        self.disk_spin.setRange(1, 4096)
        self.disk_spin.setValue(properties.get_int(AppProperties.DEFAULT_DISK_SIZE, 30))
        form.addRow("Disk (GB)", self.disk_spin)
        self.net_chk = QtWidgets.QCheckBox("Connect to the network")
        self.net_chk.setChecked(True)
        form.addRow("", self.net_chk)
        icon_row = QtWidgets.QHBoxLayout()
        self.icon_edit = QtWidgets.QLineEdit()
        icon_row.addWidget(self.icon_edit)
        icon_btn = QtWidgets.QPushButton("Browse")
        icon_btn.clicked.connect(self._browse_icon)
        icon_row.addWidget(icon_btn)
        form.addRow("Icon", icon_row)
        layout.addLayout(form)
        box = QtWidgets.QDialogButtonBox(QtWidgets.QDialogButtonBox.Ok | QtWidgets.QDialogButtonBox.Cancel)
        box.accepted.connect(self._on_ok)
        box.rejected.connect(self.reject)
        layout.addWidget(box)

    def _browse_icon(self):
        path, _ = QtWidgets.QFileDialog.getOpenFileName(self, "Select an icon", "", "Images (*.png *.jpg *.svg);;All Files (*)")
        if path:
            self.icon_edit.setText(path)

    def _on_ok(self):
        name = self.name_edit.text().strip()
        if not name:
            return
        cmd = self.arch_cmds[self.arch_combo.currentIndex()]
        try:
            self.vm_properties = self.manager.new_vm_properties(
                name,
                os_key=GUEST_OS_TYPES[self.os_combo.currentIndex()].key,
                disk_size_gb=self.disk_spin.value(),
                network=self.net_chk.isChecked(),
                icon_path=self.icon_edit.text().strip(),
                qemu_cmd=cmd[:-4] if cmd.lower().endswith(".exe") else cmd,
            )
        except VMExistsError as e:
            error_dialog(self, f"VM exists already: {e}")
            return
        self.accept()


class SettingsDialog(QtWidgets.QDialog):
    """General settings: defaults for new VMs, VM directory, style and hints."""

    def __init__(self, properties: AppProperties, parent=None):
        super().__init__(parent)
        self.properties = properties
        self.setWindowTitle(f"{APP_NAME} - Settings")
        self.setMinimumWidth(520)
        layout = QtWidgets.QVBoxLayout(self)
        form = QtWidgets.QFormLayout()
        self.style_combo = QtWidgets.QComboBox()
        self.style_combo.addItems(QtWidgets.QStyleFactory.keys())
        self.style_combo.setCurrentText(properties.get(AppProperties.LOOK_AND_FEEL) or "")
        form.addRow("Look and feel", self.style_combo)
        self.hints_chk = QtWidgets.QCheckBox("Hints in the status bar")
        self.hints_chk.setChecked(properties.give_hints)
        form.addRow("", self.hints_chk)
        self.verbose_chk = QtWidgets.QCheckBox("Verbose output on the console (from the next start)")
        self.verbose_chk.setChecked(properties.get_bool(AppProperties.VERBOSE))
        form.addRow("", self.verbose_chk)
        self.cpus_combo = QtWidgets.QComboBox()
        self.cpus_combo.addItems([c for c in CPU_COUNTS if c != NONE_ADVANCED])
        self.cpus_combo.setCurrentText(properties.get(AppProperties.DEFAULT_CPUS) or "")
        form.addRow("Default CPUs", self.cpus_combo)
        self.mem_spin = QtWidgets.QSpinBox()
        self.mem_spin.setRange(128, 262144)
        self.mem_spin.setSingleStep(128)
        self.mem_spin.setValue(properties.get_int(AppProperties.DEFAULT_MEM, 1000))
        form.addRow("Default memory (MB)", self.mem_spin)
        self.disk_spin = QtWidgets.QSpinBox()
        self.disk_spin.setRange(1, 4096)
        self.disk_spin.setValue(properties.get_int(AppProperties.DEFAULT_DISK_SIZE, 30))
        form.addRow("Default disk (GB)", self.disk_spin)
        dir_row = QtWidgets.QHBoxLayout()
        self.vm_dir_edit = QtWidgets.QLineEdit(properties.get(AppProperties.VM_DISK_PATH) or "")
        dir_row.addWidget(self.vm_dir_edit)
        browse_btn = QtWidgets.QPushButton("Browse")
        browse_btn.clicked.connect(self._browse)
        dir_row.addWidget(browse_btn)
        form.addRow("VM directory", dir_row)
        layout.addLayout(form)
        box = QtWidgets.QDialogButtonBox(QtWidgets.QDialogButtonBox.Ok | QtWidgets.QDialogButtonBox.Cancel)
        box.accepted.connect(self.accept)
        box.rejected.connect(self.reject)
        layout.addWidget(box)

    def _browse(self):
        path = QtWidgets.QFileDialog.getExistingDirectory(self, "Select the VM directory", self.vm_dir_edit.text())
        if path:
            logger.info("VM disks path selected: %s", path)
            self.vm_dir_edit.setText(path)

    def values(self) -> dict:
        values = {
            AppProperties.LOOK_AND_FEEL: self.style_combo.currentText(),
            AppProperties.GIVE_HINTS: self.hints_chk.isChecked(),
            AppProperties.VERBOSE: self.verbose_chk.isChecked(),
            AppProperties.DEFAULT_CPUS: self.cpus_combo.currentText(),
            AppProperties.DEFAULT_MEM: self.mem_spin.value(),
            AppProperties.DEFAULT_DISK_SIZE: self.disk_spin.value(),
        }
        vm_dir = self.vm_dir_edit.text().strip()
        if vm_dir:
            values[AppProperties.VM_DISK_PATH] = vm_dir
        return values


class MainWindow(QtWidgets.QMainWindow):
    vm_state_changed = QtCore.Signal(object)

    def __init__(self, context: AppContext, manager: VMManager):
        super().__init__()
        self.context = context
        self.manager = manager
        self.qemu: Qemu = manager.qemu
        self._updating = False
        self.setWindowTitle(f"{APP_NAME} {__version__}")
        self.resize(1100, 720)
        self._build_ui()
        self.vm_state_changed.connect(self._on_vm_state_changed)
        manager.on_state_change = self.vm_state_changed.emit
        self.qemu.on_vm_stopped = self.vm_state_changed.emit
        self._load_vm_list()

    @property
    def selected_index(self) -> int:
        return self.vm_list_widget.currentRow()

    @property
    def selected_vm(self) -> Optional[VM]:
        index = self.selected_index
        if 0 <= index < len(self.manager):
            return self.manager[index]
        return None

    def _build_ui(self):
        toolbar = self.addToolBar("VM")
        self.start_action = toolbar.addAction("Start", self._on_start)
        self.install_action = toolbar.addAction("Install", self._on_install)
        self.stop_action = toolbar.addAction("Stop", self._on_stop)
        toolbar.addSeparator()
        self.new_action = toolbar.addAction("New VM", self._on_new_vm)
        self.remove_action = toolbar.addAction("Remove", self._on_remove)
        self.up_action = toolbar.addAction("Up", self._on_move_up)
        self.down_action = toolbar.addAction("Down", self._on_move_down)
        toolbar.addSeparator()
        toolbar.addAction("Setup", self._on_setup)
        toolbar.addAction("Settings", self._on_settings)
        toolbar.addAction("About", self._on_about)

        split = QtWidgets.QSplitter(QtCore.Qt.Horizontal)
        self.setCentralWidget(split)
        self.vm_list_widget = QtWidgets.QListWidget()
        self.vm_list_widget.setMinimumWidth(240)
        self.vm_list_widget.currentRowChanged.connect(self._on_vm_select)
        split.addWidget(self.vm_list_widget)
        self.tabs = QtWidgets.QTabWidget()
        split.addWidget(self.tabs)
        split.setStretchFactor(1, 1)

        vm_tab = QtWidgets.QWidget()
        form = QtWidgets.QFormLayout(vm_tab)
        name_row = QtWidgets.QHBoxLayout()
        self.name_edit = QtWidgets.QLineEdit()
        name_row.addWidget(self.name_edit)
        self.rename_btn = QtWidgets.QPushButton("Rename")
        self.rename_btn.clicked.connect(self._on_rename)
        name_row.addWidget(self.rename_btn)
        form.addRow("Name", name_row)
        self.arch_combo = QtWidgets.QComboBox()
        self.arch_combo.addItems(names(ARCHITECTURES))
        self.arch_combo.currentIndexChanged.connect(self._on_arch_changed)
        form.addRow("Architecture", self.arch_combo)
        self.accel_combo = QtWidgets.QComboBox()
        self.accel_combo.addItems(names(ACCELERATORS))
        self.accel_combo.currentTextChanged.connect(
            lambda text: self._store(VMProperties.ACCELERATOR, text))
        form.addRow("Accelerator", self.accel_combo)
        self.cpus_combo = QtWidgets.QComboBox()
        self.cpus_combo.addItems(list(CPU_COUNTS))
        self.cpus_combo.currentTextChanged.connect(lambda text: self._store(VMProperties.CPUS, text))
        form.addRow("CPUs", self.cpus_combo)
        self.mem_spin = QtWidgets.QSpinBox()
        self.mem_spin.setRange(128, 262144)
        self.mem_spin.setSingleStep(128)
        self.mem_spin.valueChanged.connect(lambda value: self._store(VMProperties.VM_MEMORY_MB, value))
        form.addRow("Memory (MB)", self.mem_spin)
        self.sound_combo = QtWidgets.QComboBox()
        self.sound_combo.addItems(names(SOUNDS))
        self.sound_combo.currentIndexChanged.connect(
            lambda index: self._store(VMProperties.SOUND, SOUNDS[index].key if index > 0 else ""))
        form.addRow("Sound", self.sound_combo)
        self.net_chk = QtWidgets.QCheckBox("Network")
        self.net_chk.toggled.connect(lambda checked: self._store(VMProperties.NETWORK, checked))
        form.addRow("", self.net_chk)
        self.boot_menu_chk = QtWidgets.QCheckBox("Boot menu")
        self.boot_menu_chk.toggled.connect(lambda checked: self._store(VMProperties.QEMU_BOOT_MENU, checked))
        form.addRow("", self.boot_menu_chk)
        self.localtime_chk = QtWidgets.QCheckBox("Local time")
        self.localtime_chk.toggled.connect(lambda checked: self._store(VMProperties.LOCALTIME, checked))
        form.addRow("", self.localtime_chk)
        self.verbose_chk = QtWidgets.QCheckBox("Verbose")
        self.verbose_chk.toggled.connect(lambda checked: self._store(VMProperties.VERBOSE, checked))
        form.addRow("", self.verbose_chk)
        self.tabs.addTab(vm_tab, "VM")

        devices_tab = QtWidgets.QWidget()
        devices_layout = QtWidgets.QVBoxLayout(devices_tab)
        self.device_list = QtWidgets.QListWidget()
        devices_layout.addWidget(self.device_list)
        self.tabs.addTab(devices_tab, "Devices")

        advanced_tab = QtWidgets.QWidget()
        adv = QtWidgets.QGridLayout(advanced_tab)
        self.add_params_rbt = QtWidgets.QRadioButton("Add QEMU parameters")
        self.definition_rbt = QtWidgets.QRadioButton("QEMU by definition")
        self.add_params_rbt.setChecked(True)
        self.add_params_rbt.toggled.connect(self._on_definition_mode)
        adv.addWidget(self.add_params_rbt, 0, 0)
        adv.addWidget(self.definition_rbt, 0, 1)
        self.params_text = QtWidgets.QPlainTextEdit()
        self.params_text.setReadOnly(True)
        self.params_text.textChanged.connect(self._on_params_edited)
        adv.addWidget(self.params_text, 1, 0, 3, 2)
        copy_btn = QtWidgets.QPushButton("Copy")
        copy_btn.setToolTip("Copy the QEMU command to the clipboard")
        copy_btn.clicked.connect(self._on_copy)
        adv.addWidget(copy_btn, 1, 2)
        store_btn = QtWidgets.QPushButton("Store")
        store_btn.setToolTip("Store the QEMU command as a shell script")
        store_btn.clicked.connect(lambda: self._on_store_script(False))
        adv.addWidget(store_btn, 2, 2)
        store_lines_btn = QtWidgets.QPushButton("Store lines")
        store_lines_btn.setToolTip("Store the QEMU command as a shell script, one option per line")
        store_lines_btn.clicked.connect(lambda: self._on_store_script(True))
        adv.addWidget(store_lines_btn, 3, 2)
        adv.addWidget(QtWidgets.QLabel("Extra parameters"), 4, 0)
        self.extra_text = QtWidgets.QPlainTextEdit()
        self.extra_text.textChanged.connect(self._on_extra_edited)
        adv.addWidget(self.extra_text, 5, 0, 1, 2)
        self.tabs.addTab(advanced_tab, "Advanced")
        self.statusBar()

    def _load_vm_list(self):
        self.vm_list_widget.clear()
        for vm in self.manager.vms:
            self.vm_list_widget.addItem(self._list_item(vm))
        if len(self.manager):
            self.vm_list_widget.setCurrentRow(0)
        self._refresh_controls()

    def _list_item(self, vm: VM) -> QtWidgets.QListWidgetItem:
        item = QtWidgets.QListWidgetItem(vm.name)
        icon_path = vm.get_property(VMProperties.ICON_PATH)
        if icon_path and os.path.isfile(icon_path):
            item.setIcon(QtGui.QIcon(icon_path))
        return item

    def show_load_errors(self):
        for path, e in self.manager.load_errors:
            error_dialog(self, f"Error loading VM from '{path}': {e}")

    def _store(self, key: str, value):
        vm = self.selected_vm
        if self._updating or vm is None:
            return
        vm.set_property(key, value, store=True)
        self._update_advanced()

    def _on_vm_select(self, index: int):
        self._updating = True
        try:
            self._populate(self.selected_vm)
        finally:
            self._updating = False
        self._refresh_controls()

    def _populate(self, vm: Optional[VM]):
        self.device_list.clear()
        if vm is None:
            self.name_edit.clear()
            self.params_text.clear()
            self.extra_text.clear()
            return
        self.name_edit.setText(vm.name)
        arch = architecture_for_cmd(vm.qemu_cmd)
        self.arch_combo.setCurrentIndex(ARCHITECTURES.index(arch) if arch else 0)
        accel = vm.accelerator or ACCELERATORS[0].name
        self.accel_combo.setCurrentText(accel if accel in names(ACCELERATORS) else ACCELERATORS[0].name)
        cpus = vm.cpus.strip()
        self.cpus_combo.setCurrentText(cpus if cpus in CPU_COUNTS else NONE_ADVANCED)
        self.mem_spin.setValue(vm.memory_mb)
        self.sound_combo.setCurrentIndex(SOUNDS.index(sound_by_key(vm.sound)))
        self.net_chk.setChecked(vm.network_enabled)
        self.boot_menu_chk.setChecked(vm.boot_menu)
        self.localtime_chk.setChecked(vm.properties.get_bool(VMProperties.LOCALTIME))
        self.verbose_chk.setChecked(vm.is_verbose)
        for device, value in vm.devices():
            self.device_list.addItem(f"{device.key} ({device.kind}): {value}")
        self.definition_rbt.setChecked(vm.full_definition)
        self.add_params_rbt.setChecked(not vm.full_definition)
        self.extra_text.setPlainText(to_text_area_string(vm.extra_parameters))
        self._update_advanced()

    def _update_advanced(self):
        vm = self.selected_vm
        if vm is None:
            return
        updating, self._updating = self._updating, True
        try:
            definition = vm.full_definition
            self.params_text.setReadOnly(not definition)
            self.params_text.setPlainText(to_text_area_string(self.qemu.build_base_command(vm)))
        finally:
            self._updating = updating

    def _on_arch_changed(self, index: int):
        self._store(VMProperties.VM_QEMU, ARCHITECTURES[index].qemu_cmd)

    def _on_definition_mode(self, add_params: bool):
        self._store(VMProperties.FULL_QEMU_DEFINITION, not add_params)

    def _on_params_edited(self):
        vm = self.selected_vm
        if self._updating or vm is None or not vm.full_definition:
            return
        vm.set_property(VMProperties.FULL_QEMU_DEFINITION_CMD,
                        qemu_text_to_property(self.params_text.toPlainText()), store=True)

    def _on_extra_edited(self):
        vm = self.selected_vm
        if self._updating or vm is None:
            return
        vm.set_property(VMProperties.EXTRA_PARAMETERS, qemu_text_to_property(self.extra_text.toPlainText()),
                        store=True)

    def _advanced_command(self):
        vm = self.selected_vm
        if vm.full_definition:
            # the text area is the edited definition, one token per word
            return add_extra_parameters(create_command_list(self.params_text.toPlainText()), vm)
        return self.qemu.build_command(vm)

    def _on_copy(self):
        if self.selected_vm is None:
            return
        QtWidgets.QApplication.clipboard().setText(to_command_string(self._advanced_command()))
        self.statusBar().showMessage("QEMU command copied to the clipboard", 3000)

    def _on_store_script(self, separate_lines: bool):
        vm = self.selected_vm
        if vm is None:
            return
        path, _ = QtWidgets.QFileDialog.getSaveFileName(self, "Save to file", f"{vm.name_safe}.sh")
        if not path:
            return
        try:
            with open(path, "w", encoding="utf-8") as f:
                f.write(to_command_string_store(self._advanced_command(), separate_lines))
            os.chmod(path, 0o755)
        except OSError as e:
            error_dialog(self, f"Cannot write commands to file '{path}': {e}")

    def _refresh_controls(self):
        vm = self.selected_vm
        running = vm is not None and vm.is_running
        self.start_action.setEnabled(vm is not None and not running)
        self.install_action.setEnabled(vm is not None and not running)
        self.stop_action.setEnabled(running)
        self.remove_action.setEnabled(vm is not None and not running)
        self.rename_btn.setEnabled(vm is not None and not running)
        index = self.selected_index
        self.up_action.setEnabled(index > 0)
        self.down_action.setEnabled(0 <= index < len(self.manager) - 1)
        for i in range(self.vm_list_widget.count()):
            item = self.vm_list_widget.item(i)
            state = " (running)" if self.manager[i].is_running else ""
            item.setText(self.manager[i].name + state)

    def set_hint(self, hint: Optional[str]):
        text = self.context.properties.hint_text(hint)
        if text is not None:
            self.statusBar().showMessage(text)

    def _on_vm_state_changed(self, vm: VM):
        self.statusBar().showMessage(f"VM '{vm.name}' {'running' if vm.is_running else 'stopped'}", 5000)
        self._refresh_controls()

    def _run(self, install_path: Optional[str] = None):
        vm = self.selected_vm
        if vm is None:
            return
        try:
            if install_path:
                self.manager.run_install_vm(vm, install_path)
            else:
                self.manager.run_vm(vm)
        except LaunchError as e:
            error_dialog(self, str(e), "Start Failed")

    def _on_start(self):
        self._run()

    def _on_install(self):
        install_dir = self.context.properties.get(AppProperties.INSTALL_DIR) or ""
        if not os.path.isdir(install_dir):
            install_dir = ""
        path, _ = QtWidgets.QFileDialog.getOpenFileName(
            self, "Select the install image", install_dir, "ISO Files (*.iso *.img);;All Files (*)")
        if path:
            self._run(path)

    def _on_stop(self):
        vm = self.selected_vm
        if vm is not None:
            self.manager.stop_vm(vm)

    def _on_new_vm(self):
        dlg = NewVmDialog(self.manager, self)
        if dlg.exec() != QtWidgets.QDialog.Accepted or dlg.vm_properties is None:
            return
        vm = self.manager.create_vm(dlg.vm_properties)
        self.vm_list_widget.addItem(self._list_item(vm))
        self.vm_list_widget.setCurrentRow(len(self.manager) - 1)
        self.set_hint(USE_INSTALL_VM_BUTTON_HINT_MSG)

    def _on_remove(self):
        vm = self.selected_vm
        if vm is None:
            return
        answer = QtWidgets.QMessageBox.question(
            self, "Remove VM", f"Remove VM '{vm.name}'? Remove its disk too?",
            QtWidgets.QMessageBox.Yes | QtWidgets.QMessageBox.No | QtWidgets.QMessageBox.Cancel,
            QtWidgets.QMessageBox.Cancel)
        if answer == QtWidgets.QMessageBox.Cancel:
            return
        self.manager.remove_vm(self.selected_index, wipe_disk=answer == QtWidgets.QMessageBox.Yes)
        self._load_vm_list()

    def _on_rename(self):
        vm = self.selected_vm
        new_name = self.name_edit.text().strip()
        if vm is None or not new_name or new_name == vm.name:
            return
        try:
            self.manager.rename_vm(self.selected_index, new_name)
        except VMExistsError as e:
            error_dialog(self, f"VM exists already: {e}")
            return
        self._refresh_controls()
        self._update_advanced()

    def _on_move_up(self):
        self.vm_list_widget.blockSignals(True)
        index = self.manager.move_up(self.selected_index)
        self.vm_list_widget.blockSignals(False)
        self._load_vm_list()
        self.vm_list_widget.setCurrentRow(index)

    def _on_move_down(self):
        self.vm_list_widget.blockSignals(True)
        index = self.manager.move_down(self.selected_index)
        self.vm_list_widget.blockSignals(False)
        self._load_vm_list()
        self.vm_list_widget.setCurrentRow(index)

    def _on_setup(self):
        properties = self.context.properties
        installation = properties.qemu_installation()
        setup = QemuSetup(properties, False, self.context.os_name)
        setup.revalidate()
        if SetupDialog(setup, self).exec() == QtWidgets.QDialog.Accepted:
            properties.store()
        else:
            properties.restore_qemu_installation(installation)

    def _on_settings(self):
        dlg = SettingsDialog(self.context.properties, self)
        if dlg.exec() != QtWidgets.QDialog.Accepted:
            return
        changed = self.context.properties.apply_settings(dlg.values())
        if AppProperties.LOOK_AND_FEEL in changed:
            apply_style(QtWidgets.QApplication.instance(), self.context.properties)
        if AppProperties.VM_DISK_PATH in changed:
            try:
                self.context.ensure_vm_dir()
            except ConfigError as e:
                error_dialog(self, str(e))
                return
            QtWidgets.QMessageBox.information(
                self, "Settings", "The VM directory is used from the next start of " + APP_NAME)

    def _on_about(self):
        QtWidgets.QMessageBox.about(self, f"About {APP_NAME}",
                                    f"{APP_NAME} {__version__}\nA graphical user interface to run QEMU.")


def apply_style(app: QtWidgets.QApplication, properties: AppProperties):
    style = properties.get(AppProperties.LOOK_AND_FEEL) or ""
    if style in QtWidgets.QStyleFactory.keys():
        app.setStyle(style)
    else:
        logger.info("style '%s' not available, using the default", style)


def run(context: AppContext) -> int:
    app = QtWidgets.QApplication.instance() or QtWidgets.QApplication(sys.argv)
    app.setApplicationName(APP_NAME)
    apply_style(app, context.properties)
    accepted = []

    def show_wizard(setup: QemuSetup):
        accepted.append(SetupDialog(setup).exec() == QtWidgets.QDialog.Accepted)

    setup = QemuSetup(context.properties, context.first_start, context.os_name, show_wizard=show_wizard)
    if setup.start() and not accepted[-1]:
        print(SETUP_CANCELED_MSG)
        logger.info(SETUP_CANCELED_MSG)
        return 1
    context.first_start = False
    context.properties.store()
    qemu = Qemu(context.properties)
    manager = VMManager(context.properties, qemu, str(context.vm_dir), verbose=context.verbose)
    manager.load()
    win = MainWindow(context, manager)
    win.show()
    win.show_load_errors()
    win.set_hint(setup.hint or (FIRST_VM_HINT_MSG if not len(manager) else None))
    return app.exec()
