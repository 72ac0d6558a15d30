APP_NAME = "QemuJuicy"
VERSION_MAJOR = 0
VERSION_MINOR = 6
VERSION_RELEASE = 7
__version__ = f"{VERSION_MAJOR}.{VERSION_MINOR}.{VERSION_RELEASE}"
