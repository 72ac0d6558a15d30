import argparse
import logging
import os
import platform
import sys
from typing import List, Optional

from qemujuicy import APP_NAME, __version__, logs
from qemujuicy.context import AppContext
from qemujuicy.errors import ConfigError
from qemujuicy.properties import AppProperties

logger = logging.getLogger(__name__)

USAGE = f"""
{APP_NAME} usage:
qemujuicy [-h] [-v] [-q]
    -h          ... display this message and exit
    -v          ... display version and exit
    -q          ... quiet, no verbose messages
"""


class ArgumentParser(argparse.ArgumentParser):
    def format_usage(self):
        return USAGE

    format_help = format_usage

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(prog="qemujuicy", add_help=False)
    parser.add_argument("-h", action="store_true", dest="help")
    parser.add_argument("-v", action="store_true", dest="version")
    parser.add_argument("-q", action="store_true", dest="quiet")
    return parser


def version_string() -> str:
    return f"{APP_NAME} version {__version__}"


def exit_on_exception(e: BaseException):
    print(f"\n*****  Exception caught, exit: {e}")
    logger.error("Exception caught, exit", exc_info=e)
    logs.flush()
    sys.exit(1)


def _excepthook(exc_type, exc, tb):
    # exceptions escaping Qt slots end up here
    logger.error("Unexpected exception, exit", exc_info=(exc_type, exc, tb))
    logs.flush()
    sys.__excepthook__(exc_type, exc, tb)
    os._exit(1)


def install_excepthook():
    sys.excepthook = _excepthook


def on_exit(context: AppContext):
    context.properties.store()
    logger.info("%s: exit under normal conditions", APP_NAME)
    logs.flush()
    print(f"{APP_NAME}, bye.")


def startup(verbose: bool = True) -> AppContext:
    context = AppContext.create(verbose=verbose)
    # verbose=false in the configuration silences the console like -q
    context.verbose = verbose and context.properties.get_bool(AppProperties.VERBOSE)
    logs.init_logging(str(context.log_path), context.verbose)
    logger.info("%s: started ...", APP_NAME)
    logger.info("OS: %s (%s %s), Python %s", context.os_name, platform.system(), platform.release(),
                platform.python_version())
    logs.log_environment()
    logger.info("%s application directory: '%s'", APP_NAME, context.app_dir)
    logger.info("VM directory: '%s'", context.vm_dir)
    context.properties.log("Configuration:")
    return context


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.help:
        print(USAGE)
        return 0
    if args.version:
        print(version_string())
        return 0
    if not args.quiet:
        print(f"Starting {APP_NAME} ...")
    try:
        context = startup(verbose=not args.quiet)
    except ConfigError as e:
        exit_on_exception(e)
    install_excepthook()
    from qemujuicy import gui
    try:
        rc = gui.run(context)
    except ConfigError as e:
        exit_on_exception(e)
    on_exit(context)
    return rc
