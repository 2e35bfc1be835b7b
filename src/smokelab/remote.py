"""
SSH, SCP and rsync helpers.

Hosts are reached with the system OpenSSH client through ``subprocess``;
every failure surfaces as ``RemoteCommandError`` with the host id attached.

Usage:
    client = SshClient.for_host(host)
    client.run("mkdir -p logs")
    client.put_bytes(b"...", "consul/consul.hcl", mode=0o644)
"""

import logging
import shlex
import subprocess
from pathlib import Path
from typing import Optional, Sequence, TYPE_CHECKING

from smokelab import constants as CONSTANTS
from smokelab.core.exceptions import RemoteCommandError

if TYPE_CHECKING:
    from smokelab.core.model import Host

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120


def run_local(
    args: Sequence[str],
    input_data: Optional[bytes] = None,
    timeout: Optional[int] = None,
    cwd: Optional[str | Path] = None,
    host: Optional[str] = None
) -> subprocess.CompletedProcess:
    """
    Run a local command, raising on non-zero exit.

    Raises:
        RemoteCommandError: On non-zero exit or timeout
    """
    logger.debug(f"Running: {' '.join(args)}")
    try:
        result = subprocess.run(
            list(args),
            input=input_data,
            capture_output=True,
            timeout=timeout,
            cwd=cwd,
            check=False
        )
    except subprocess.TimeoutExpired:
        raise RemoteCommandError(args[0], -1, f"timed out after {timeout}s", host=host)
    except FileNotFoundError:
        raise RemoteCommandError(args[0], 127, f"executable not found: {args[0]}", host=host)

    if result.returncode != 0:
        output = (result.stderr or result.stdout or b"").decode("utf-8", errors="replace")
        raise RemoteCommandError(args[0], result.returncode, output or "No output captured", host=host)
    return result


class SshClient:
    """
    OpenSSH client bound to one host.

    Attributes:
        address: Host IP or name
        username: Remote login
        key_path: Private key file (optional, falls back to the ssh agent)
        label: Host id used in logs and errors
    """

    def __init__(
        self,
        address: str,
        username: str,
        key_path: Optional[str] = None,
        label: Optional[str] = None
    ):
        if not address:
            raise ValueError("address is required")
        if not username:
            raise ValueError("username is required")
        self.address = address
        self.username = username
        self.key_path = key_path
        self.label = label or address

    @classmethod
    def for_host(cls, host: "Host") -> "SshClient":
        return cls(
            address=host.must_public_ip(),
            username=host.must_string_variable(CONSTANTS.SSH_USERNAME_VAR),
            key_path=host.get_variable(CONSTANTS.SSH_KEY_PATH_VAR),
            label=host.id,
        )

    @property
    def destination(self) -> str:
        return f"{self.username}@{self.address}"

    def ssh_options(self) -> list[str]:
        options = list(CONSTANTS.SSH_OPTS)
        if self.key_path:
            options += ["-i", str(self.key_path)]
        return options

    def run(
        self,
        command: str,
        input_data: Optional[bytes] = None,
        timeout: int = DEFAULT_TIMEOUT_SECONDS
    ) -> str:
        """
        Run a remote shell command and return its stdout.

        Raises:
            RemoteCommandError: On non-zero exit or timeout
        """
        logger.debug(f"[{self.label}] $ {command}")
        args = ["ssh"] + self.ssh_options() + [self.destination, command]
        result = run_local(args, input_data=input_data, timeout=timeout, host=self.label)
        return result.stdout.decode("utf-8", errors="replace")

    def is_ready(self, timeout: int = 15) -> bool:
        """True when the host accepts an SSH session."""
        try:
            self.run("true", timeout=timeout)
            return True
        except RemoteCommandError as e:
            logger.debug(f"[{self.label}] not ready: {e}")
            return False

    def put_bytes(self, data: bytes, dest: str, mode: int = 0o644) -> None:
        """
        Write ``data`` to ``dest`` on the host, creating parent directories.

        Relative destinations are resolved against the remote home directory.
        """
        quoted = shlex.quote(dest)
        parent = shlex.quote(str(Path(dest).parent))
        command = f"mkdir -p {parent} && cat > {quoted} && chmod {mode:o} {quoted}"
        self.run(command, input_data=data)
        logger.debug(f"[{self.label}] wrote {len(data)} byte(s) to {dest}")

    def put_file(self, local_path: str | Path, dest: str) -> None:
        args = ["scp"] + self.ssh_options() + [str(local_path), f"{self.destination}:{dest}"]
        run_local(args, timeout=DEFAULT_TIMEOUT_SECONDS, host=self.label)

    def rsync(self, local_dir: str | Path, remote_dir: str = "fablab") -> None:
        """Mirror ``local_dir`` into ``remote_dir`` on the host."""
        ssh_command = " ".join(["ssh"] + [shlex.quote(o) for o in self.ssh_options()])
        source = str(local_dir).rstrip("/") + "/"
        args = [
            "rsync", "-az", "--delete",
            "-e", ssh_command,
            "--rsync-path", f"mkdir -p {shlex.quote(remote_dir)} && rsync",
            source,
            f"{self.destination}:{remote_dir}/",
        ]
        run_local(args, host=self.label)
        logger.debug(f"[{self.label}] synced {local_dir} -> {remote_dir}")
