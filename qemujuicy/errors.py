class QemuJuicyError(Exception):
    pass


class ConfigError(QemuJuicyError):
    """A property file could not be read or written."""


class VMExistsError(QemuJuicyError):
    def __init__(self, path: str):
        super().__init__(f"A file '{path}' exists already")
        self.path = path


class LaunchError(QemuJuicyError):
    def __init__(self, command, cause: Exception):
        super().__init__(f"Cannot start '{command[0] if command else ''}': {cause}")
        self.command = list(command)
        self.cause = cause
