"""Locating the bundled sqls binary for the current platform."""

import platform
import sys
from pathlib import Path

from sqls_next.errors import ExecutableMissing

SERVER_NAME = "sqls"

# Arguments the server is launched with
SERVER_ARGS = ["-t"]


def get_base_path() -> str:
    """Platform subdirectory name, ``{os}_{arch}``."""
    machine = platform.machine().lower()
    arch = "arm64" if machine in ("arm64", "aarch64") else "amd64"

    if sys.platform == "win32":
        os_name = "windows"
    elif sys.platform == "darwin":
        os_name = "darwin"
    else:
        os_name = "linux"

    return f"{os_name}_{arch}"


def get_executable_name() -> str:
    return f"{SERVER_NAME}.exe" if sys.platform == "win32" else SERVER_NAME


def get_server_dir(resources_dir: Path) -> Path:
    """Directory holding the binary; also the server's working directory."""
    return Path(resources_dir) / get_base_path()


def resolve_server_executable(resources_dir: Path) -> Path:
    """Return the binary path, or raise ExecutableMissing."""
    executable = get_server_dir(resources_dir) / get_executable_name()
    if not executable.is_file():
        raise ExecutableMissing(str(executable))
    return executable
