"""
Remote command runner.

:func:`run_command` wires a command's stdout and stderr through two
:class:`~habprov.relay.LineRelay` threads and only returns once the remote
process exited and both relays drained, so no buffered line is lost.
"""

from __future__ import annotations

import io
import logging
import os
import threading
from typing import Sequence, Union

from habprov import commands
from habprov.errors import NonZeroExitError, ProvisionError, TransportError
from habprov.relay import LineRelay, OutputSink
from habprov.transport import Communicator, RemoteCommand

LOGGER = logging.getLogger(__name__)


def _serialised(sink: OutputSink) -> OutputSink:
    lock = threading.Lock()

    def _emit(line: str) -> None:
        LOGGER.debug("remote: %s", line)
        with lock:
            sink(line)

    return _emit


def run_command(communicator: Communicator, command: str, sink: OutputSink) -> None:
    """
    Execute *command* and relay its output to *sink* line by line.

    Raises :class:`NonZeroExitError` when the remote exit status is not zero and
    :class:`TransportError` when the command could not be started or its
    output could not be read.
    """

    emit = _serialised(sink)
    out_r, out_w = os.pipe()
    err_r, err_w = os.pipe()
    out_reader = os.fdopen(out_r, "rb", buffering=0)
    err_reader = os.fdopen(err_r, "rb", buffering=0)
    out_writer = os.fdopen(out_w, "wb", buffering=0)
    err_writer = os.fdopen(err_w, "wb", buffering=0)

    relays = (
        LineRelay(out_reader, emit, name="stdout"),
        LineRelay(err_reader, emit, name="stderr"),
    )
    for relay in relays:
        relay.start()

    cmd = RemoteCommand(command=command, stdout=out_writer, stderr=err_writer)
    LOGGER.info("Running remote command: %s", command)
    try:
        try:
            communicator.start(cmd)
        except ProvisionError:
            raise
        except Exception as exc:
            raise TransportError(f"Error executing command {command!r}: {exc}") from exc
        status = cmd.wait()
    finally:
        # Closing the write ends lets both relays hit EOF; wait for them so
        # every produced line reached the sink before returning.
        out_writer.close()
        err_writer.close()
        for relay in relays:
            relay.wait()
        out_reader.close()
        err_reader.close()

    if cmd.error is not None:
        raise TransportError(
            f"Error streaming output of {command!r}: {cmd.error}"
        ) from cmd.error
    for relay in relays:
        if relay.error is not None:
            raise TransportError(
                f"Error reading {relay.name} of {command!r}: {relay.error}"
            ) from relay.error
    if status != 0:
        LOGGER.error("Remote command failed rc=%s: %s", status, command)
        raise NonZeroExitError(command, status)


class RemoteSession:
    """Communicator, output sink and elevation flag shared by the provisioning steps."""

    def __init__(
        self,
        communicator: Communicator,
        output: OutputSink,
        *,
        use_sudo: bool = False,
    ) -> None:
        self.communicator = communicator
        self.output = output
        self.use_sudo = use_sudo

    def run(self, command: Union[str, Sequence[str]]) -> None:
        text = command if isinstance(command, str) else commands.render(command)
        run_command(self.communicator, text, self.output)

    def put_file(
        self, content: Union[str, bytes], destination: str, *, mode: str = "0644"
    ) -> None:
        """
        Place *content* at *destination* on the remote host.

        The payload goes through the communicator's upload primitive to a
        uniquely named file in a private (0700) staging directory under the
        login user's home, then ``install`` moves it into place with the
        requested mode (elevated when sudo is configured).  The staged copy is
        removed whether or not the install succeeded.
        """

        data = content.encode("utf-8") if isinstance(content, str) else content
        self.run(commands.make_staging_dir())
        staging = commands.staging_path(destination)
        LOGGER.info("Uploading %d bytes to %s via %s", len(data), destination, staging)
        try:
            try:
                self.communicator.upload(staging, io.BytesIO(data))
            except ProvisionError:
                raise
            except Exception as exc:
                raise TransportError(f"Error uploading {destination}: {exc}") from exc
            self.run(commands.install_file(staging, destination, self.use_sudo, mode=mode))
        finally:
            self._discard(staging)

    def _discard(self, staging: str) -> None:
        try:
            self.run(commands.remove_file(staging))
        except ProvisionError as exc:
            # Never mask the error that got us here.
            LOGGER.warning("Could not remove staged file %s: %s", staging, exc)


__all__ = ["RemoteSession", "run_command"]
