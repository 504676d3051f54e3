"""Tests for the ssh command runner with paramiko mocked out."""
import itertools
import socket
from unittest.mock import MagicMock, patch

import paramiko
import pytest

from ykube import exceptions
from ykube.utils import command_runner


def _channel(chunks, returncode):
    """A channel that yields `chunks` and then exits with `returncode`."""
    channel = MagicMock()
    pending = list(chunks)
    channel.recv_ready.side_effect = lambda: bool(pending)
    channel.recv.side_effect = lambda size: pending.pop(0)
    channel.exit_status_ready.return_value = True
    channel.recv_exit_status.return_value = returncode
    return channel


@pytest.fixture
def ssh_client():
    with patch.object(paramiko, 'SSHClient') as client_cls:
        yield client_cls.return_value


@pytest.fixture
def runner():
    return command_runner.SSHCommandRunner(user='root',
                                           private_key_path='/tmp/key',
                                           connect_timeout=3,
                                           command_timeout=60)


def test_output_is_returned(ssh_client, runner):
    channel = _channel([b'hello ', b'world\n'], 0)
    ssh_client.get_transport.return_value.open_session.return_value = channel

    assert runner.run('10.0.0.1', 'echo hello world') == b'hello world\n'

    channel.set_combine_stderr.assert_called_once_with(True)
    channel.exec_command.assert_called_once_with('echo hello world')
    kwargs = ssh_client.connect.call_args.kwargs
    assert ssh_client.connect.call_args.args == ('10.0.0.1',)
    assert kwargs['username'] == 'root'
    assert kwargs['key_filename'] == '/tmp/key'
    assert kwargs['timeout'] == 3
    ssh_client.close.assert_called_once()


def test_non_zero_exit_raises_with_output(ssh_client, runner):
    channel = _channel([b'boom\n'], 2)
    ssh_client.get_transport.return_value.open_session.return_value = channel

    with pytest.raises(exceptions.CommandError) as exc_info:
        runner.run('10.0.0.1', 'false')
    assert exc_info.value.returncode == 2
    assert exc_info.value.output == b'boom\n'
    assert exc_info.value.host == '10.0.0.1'
    ssh_client.close.assert_called_once()


@pytest.mark.parametrize('error', [
    paramiko.AuthenticationException('denied'),
    socket.timeout('timed out'),
])
def test_connection_failure_raises(ssh_client, runner, error):
    ssh_client.connect.side_effect = error

    with pytest.raises(exceptions.CommandError) as exc_info:
        runner.run('10.0.0.1', 'true')
    assert exc_info.value.returncode is None
    assert 'cannot connect' in str(exc_info.value)


def test_command_past_deadline_raises(ssh_client):
    channel = MagicMock()
    channel.recv_ready.return_value = False
    channel.exit_status_ready.return_value = False
    ssh_client.get_transport.return_value.open_session.return_value = channel
    runner = command_runner.SSHCommandRunner(user='root',
                                             private_key_path='/tmp/key',
                                             command_timeout=0)

    with patch.object(command_runner.time, 'sleep'):
        with pytest.raises(exceptions.CommandError) as exc_info:
            runner.run('10.0.0.1', 'sleep 100')
    assert 'timed out' in str(exc_info.value)
    channel.close.assert_called_once()


def test_chatty_command_past_deadline_raises(ssh_client):
    channel = MagicMock()
    channel.recv_ready.return_value = True
    channel.recv.return_value = b'x'
    channel.exit_status_ready.return_value = False
    ssh_client.get_transport.return_value.open_session.return_value = channel
    runner = command_runner.SSHCommandRunner(user='root',
                                             private_key_path='/tmp/key',
                                             command_timeout=2)

    # One second passes per clock read, the first read being the start time.
    with patch.object(command_runner.time,
                      'time',
                      side_effect=itertools.count()):
        with pytest.raises(exceptions.CommandError) as exc_info:
            runner.run('10.0.0.1', 'yes')
    assert 'timed out after 2s' in str(exc_info.value)
    assert exc_info.value.output == b'xx'
    channel.close.assert_called_once()
    ssh_client.close.assert_called_once()
