"""Command-line options for the PowerVS block CSI driver."""

from __future__ import annotations

import argparse
import enum
import json
import logging
import platform
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

logger = logging.getLogger(__name__)

# Key of the volume WWN in a PublishContext.
WWN_KEY = "wwn"
# Key of the volume type in volume parameters.
VOLUME_TYPE_KEY = "type"
# Default endpoint the driver server listens on.
DEFAULT_CSI_ENDPOINT = "unix://tmp/csi.sock"

PROGRAM_NAME = "ibm-powervs-block-csi-driver"
DRIVER_VERSION = "unknown"

_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class Mode(str, enum.Enum):
    """Operating mode of the driver."""

    CONTROLLER = "controller"
    NODE = "node"
    ALL = "all"


def _parse_bool(text: str) -> bool:
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value {text!r}")


class _Bind(argparse.Action):
    """Store a parsed value directly on an options object."""

    def __init__(self, option_strings, dest, target=None, attribute=None, **kwargs):
        super().__init__(option_strings, dest, **kwargs)
        self.target = target
        self.attribute = attribute

    def __call__(self, parser, namespace, values, option_string=None):
        setattr(self.target, self.attribute, values)


def _bind(
    parser: argparse.ArgumentParser,
    name: str,
    target: Any,
    attribute: str,
    default: Any,
    help_text: str,
    value_type: Callable[[str], Any] | None = None,
    flag: bool = False,
) -> None:
    setattr(target, attribute, default)
    extra: dict[str, Any] = {}
    if flag:
        extra = {"nargs": "?", "const": True, "type": _parse_bool}
    elif value_type is not None:
        extra = {"type": value_type}
    parser.add_argument(
        f"-{name}",
        f"--{name}",
        action=_Bind,
        target=target,
        attribute=attribute,
        default=argparse.SUPPRESS,
        help=help_text,
        **extra,
    )


@dataclass
class ServerOptions:
    """Options and configuration settings for the driver server."""

    endpoint: str = DEFAULT_CSI_ENDPOINT
    debug: bool = False
    kubeconfig: str = ""
    cloudconfig: str = ""

    def add_flags(self, parser: argparse.ArgumentParser) -> None:
        """Register the server flags on ``parser``, bound to this object."""
        _bind(parser, "endpoint", self, "endpoint", DEFAULT_CSI_ENDPOINT,
              "Endpoint for the CSI driver server")
        _bind(parser, "debug", self, "debug", False,
              "Debug option PowerVS client(Prints API requests and replies)", flag=True)
        _bind(parser, "kubeconfig", self, "kubeconfig", "", "Kubeconfig of the cluster")
        _bind(parser, "cloud-config", self, "cloudconfig", "",
              "The path to the cloud provider configuration file. "
              "Empty string for no configuration file.")


@dataclass
class NodeOptions:
    """Options and configuration settings for the node service."""

    volume_attach_limit: int = -1

    def add_flags(self, parser: argparse.ArgumentParser) -> None:
        """Register the node flags on ``parser``, bound to this object."""
        _bind(parser, "volume-attach-limit", self, "volume_attach_limit", -1,
              "Value for the maximum number of volumes attachable per node. "
              "If specified, the limit applies to all nodes. If not specified, "
              "the value is approximated from the instance type.",
              value_type=int)


@dataclass
class Options:
    """The combined set of options for all operating modes."""

    driver_mode: Mode = Mode.ALL
    server_options: ServerOptions = field(default_factory=ServerOptions)
    node_options: NodeOptions = field(default_factory=NodeOptions)


def _version_json() -> str:
    info = {
        "driverVersion": DRIVER_VERSION,
        "pythonVersion": platform.python_version(),
        "platform": f"{sys.platform}/{platform.machine()}",
    }
    return json.dumps(info, indent=2)


def get_options(argv: Sequence[str] | None = None) -> Options:
    """Parse command-line arguments (without the program name) into Options.

    Raises SystemExit on an unknown command, on bad flags, and after
    printing version information when ``-version`` is given.
    """
    args = list(sys.argv[1:] if argv is None else argv)
    parser = argparse.ArgumentParser(prog=PROGRAM_NAME, allow_abbrev=False)
    parser.add_argument("-version", "--version", action="store_true",
                        help="Print the version and exit.")

    server_options = ServerOptions()
    node_options = NodeOptions()
    server_options.add_flags(parser)

    mode = Mode.ALL
    if args:
        command = args[0]
        if command == Mode.CONTROLLER.value:
            args = args[1:]
            mode = Mode.CONTROLLER
        elif command == Mode.NODE.value:
            node_options.add_flags(parser)
            args = args[1:]
            mode = Mode.NODE
        elif command == Mode.ALL.value:
            node_options.add_flags(parser)
            args = args[1:]
        elif command.startswith("-"):
            node_options.add_flags(parser)
        else:
            logger.error(
                "unknown command: %s: expected %r, %r or %r",
                command, Mode.CONTROLLER.value, Mode.NODE.value, Mode.ALL.value,
            )
            raise SystemExit(1)

    namespace = parser.parse_args(args)

    if namespace.version:
        print(_version_json())
        raise SystemExit(0)

    return Options(driver_mode=mode, server_options=server_options, node_options=node_options)