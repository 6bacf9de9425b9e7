import dataclasses
import io
import logging
import shlex
import socket
import subprocess
import time
from pathlib import Path
from typing import List, Optional, Union

import paramiko

logger = logging.getLogger("jstat.ssh")


@dataclasses.dataclass
class SSH:
    user: Optional[str]
    host: str
    client: Optional[paramiko.SSHClient] = None
    proxy_client: Optional[paramiko.SSHClient] = None
    proxy_host: Optional[str] = None
    proxy_user: Optional[str] = None
    proxy_sock: Optional[paramiko.Channel] = None
    private_key: Optional[Path] = None
    transport: Optional[paramiko.Transport] = None

    def close(self) -> None:
        if self.client:
            logger.debug("closing client...")
            self.client.close()
            self.client = None

        if self.proxy_sock:
            logger.debug("closing proxy sock...")
            self.proxy_sock.close()
            self.proxy_sock = None

        if self.transport:
            logger.debug("closing proxy transport...")
            self.transport.close()
            self.transport = None

        if self.proxy_client:
            logger.debug("closing proxy client...")
            self.proxy_client.close()
            self.proxy_client = None

        logger.debug("closed client...")

    def connect(self) -> None:
        pkey = None
        if self.private_key:
            pkey = paramiko.RSAKey.from_private_key_file(str(self.private_key))

        if not self.client:
            self.client = paramiko.SSHClient()

        if self.proxy_host:
            self.proxy_client = paramiko.SSHClient()
            self.proxy_client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            logger.debug(
                "connecting to proxy ssh server (proxy_host=%s, proxy_user=%s)",
                self.proxy_host,
                self.proxy_user,
            )
            self.proxy_client.connect(
                hostname=self.proxy_host, username=self.proxy_user
            )

            self.transport = self.proxy_client.get_transport()
            if not self.transport:
                raise RuntimeError("unable to open transport")

            logger.debug("opening transport channel to %s...", self.host)
            self.proxy_sock = self.transport.open_channel(
                "direct-tcpip", (self.host, 22), ("", 0)
            )

        self.client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        logger.debug(
            "connecting to ssh server (host=%s, user=%s)", self.host, self.user
        )
        self.client.connect(
            hostname=self.host,
            username=self.user,
            sock=self.proxy_sock,
            pkey=pkey,
        )
        logger.debug("connected to ssh server (host=%s, user=%s)", self.host, self.user)

    def connect_with_retries(self, attempts: int = 10, sleep: float = 1.0) -> None:
        last_error: Optional[Exception] = None
        while attempts > 0:
            attempts -= 1
            try:
                self.connect()
                return
            except paramiko.ssh_exception.AuthenticationException as exc:
                # Retrying will not fix credentials.
                self.close()
                raise ConnectionError(f"authentication failed: {exc}") from exc
            except paramiko.ssh_exception.BadHostKeyException as exc:
                logger.debug("failed to verify host key: %r", exc)
                last_error = exc
            except paramiko.ssh_exception.NoValidConnectionsError as exc:
                logger.debug("failed to connect: %r", exc)
                last_error = exc
            except paramiko.ssh_exception.SSHException as exc:
                logger.debug("failed to connect: %r", exc)
                last_error = exc
            except TimeoutError as exc:
                logger.debug("failed to connect due to timeout: %r", exc)
                last_error = exc
            except socket.error as exc:
                logger.debug("failed to connect due to socket error: %r", exc)
                last_error = exc

            self.close()
            time.sleep(sleep)

        raise ConnectionError(f"unable to connect to {self.host}: {last_error!r}")

    def run(  # pylint: disable=too-many-locals
        self,
        cmd: List[str],
        *,
        capture_output: bool = False,
        check: bool = False,
        text: bool = False,
        timeout: float = 300.0,
        recv_len: int = 64 * 1024,
        relax_duration: float = 0.02,
    ) -> subprocess.CompletedProcess:
        stderr_out: Union[bytes, str, None] = b""
        stdout_out: Union[bytes, str, None] = b""
        cmd_string = shlex.join(cmd)

        assert self.client

        transport = self.client.get_transport()
        assert transport

        channel = transport.open_session()
        channel.settimeout(timeout)

        logger.debug("running command: %r", cmd_string)
        channel.exec_command(cmd_string)
        channel.shutdown_write()

        stdout_io = io.BytesIO()
        stderr_io = io.BytesIO()

        while (
            not channel.exit_status_ready()
            or channel.recv_ready()
            or channel.recv_stderr_ready()
            or not channel.eof_received
        ):
            pending_data = channel.recv_ready() or channel.recv_stderr_ready()

            if channel.recv_ready():
                data = channel.recv(recv_len)
                while data:
                    stdout_io.write(data)
                    data = channel.recv(recv_len)

            if channel.recv_stderr_ready():
                data = channel.recv_stderr(recv_len)
                while data:
                    stderr_io.write(data)
                    data = channel.recv_stderr(recv_len)

            if not pending_data:
                time.sleep(relax_duration)

        returncode = channel.recv_exit_status()
        stdout_out = stdout_io.getvalue()
        stderr_out = stderr_io.getvalue()
        logger.debug(
            "command exited with: %d (stdout=%d stderr=%d)",
            returncode,
            len(stdout_out),
            len(stderr_out),
        )
        channel.close()

        if check and returncode != 0:
            raise subprocess.CalledProcessError(
                returncode, cmd_string, stdout_out, stderr_out
            )

        if not capture_output:
            stdout_out = None
            stderr_out = None

        if text and capture_output:
            assert isinstance(stderr_out, bytes)
            assert isinstance(stdout_out, bytes)
            stdout_out = stdout_out.decode(encoding="utf-8", errors="replace")
            stderr_out = stderr_out.decode(encoding="utf-8", errors="replace")

        return subprocess.CompletedProcess(cmd, returncode, stdout_out, stderr_out)
