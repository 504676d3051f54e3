"""Runs shell commands on cluster hosts over ssh."""
import abc
import os
import socket
import time
from typing import Optional

import paramiko

from ykube import exceptions
from ykube import ykube_logging

logger = ykube_logging.init_logger(__name__)

_POLL_INTERVAL = 0.5


class CommandRunner(abc.ABC):
    """Runs one command on one host and returns everything it printed."""

    @abc.abstractmethod
    def run(self, host: str, cmd: str) -> bytes:
        """Runs `cmd` through the login shell of `host`.

        Returns:
            stdout and stderr of the command, interleaved.

        Raises:
            CommandError: if the command exits non-zero, cannot be started,
                or runs past the runner's deadline.
        """


class SSHCommandRunner(CommandRunner):
    """A CommandRunner that opens a fresh ssh connection per command."""

    def __init__(self,
                 user: str,
                 private_key_path: str,
                 port: int = 22,
                 connect_timeout: float = 30,
                 command_timeout: Optional[float] = None) -> None:
        self.user = user
        self.private_key_path = os.path.expanduser(private_key_path)
        self.port = port
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout

    def _connect(self, host: str) -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        # Instances are brand new, their host keys are unknown.
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        client.connect(host,
                       port=self.port,
                       username=self.user,
                       key_filename=self.private_key_path,
                       timeout=self.connect_timeout,
                       banner_timeout=self.connect_timeout,
                       auth_timeout=self.connect_timeout,
                       allow_agent=False,
                       look_for_keys=False)
        return client

    def run(self, host: str, cmd: str) -> bytes:
        logger.debug(f'Running on {self.user}@{host}: {cmd}')
        try:
            client = self._connect(host)
        except (paramiko.SSHException, socket.error) as e:
            raise exceptions.CommandError(host,
                                          cmd,
                                          None,
                                          reason=f'cannot connect: {e}') from e
        try:
            return self._exec(client, host, cmd)
        finally:
            client.close()

    def _exec(self, client: paramiko.SSHClient, host: str, cmd: str) -> bytes:
        start = time.time()
        try:
            channel = client.get_transport().open_session()
            channel.set_combine_stderr(True)
            channel.exec_command(cmd)
            chunks = []
            while True:
                # Checked before reading, so a command that keeps printing
                # still hits the deadline.
                if (self.command_timeout is not None and
                        time.time() - start > self.command_timeout):
                    channel.close()
                    raise exceptions.CommandError(
                        host,
                        cmd,
                        None,
                        output=b''.join(chunks),
                        reason=f'timed out after {self.command_timeout}s')
                if channel.recv_ready():
                    chunks.append(channel.recv(32768))
                    continue
                if channel.exit_status_ready():
                    break
                time.sleep(_POLL_INTERVAL)
            while channel.recv_ready():
                chunks.append(channel.recv(32768))
            returncode = channel.recv_exit_status()
        except (paramiko.SSHException, socket.error) as e:
            raise exceptions.CommandError(host, cmd, None,
                                          reason=str(e)) from e
        output = b''.join(chunks)
        logger.debug(f'{host} finished in {time.time() - start:.1f}s '
                     f'with exit code {returncode}')
        if returncode != 0:
            raise exceptions.CommandError(host, cmd, returncode, output=output)
        return output
