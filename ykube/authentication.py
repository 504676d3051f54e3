"""Module to enable a single ykube key for all instances of a cluster."""
import functools
import os
from typing import Optional, Tuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.backends import default_backend

from ykube import exceptions
from ykube import ykube_logging
from ykube.provision import interfaces

logger = ykube_logging.init_logger(__name__)

PRIVATE_SSH_KEY_PATH = '~/.ssh/ykube-key'
PUBLIC_SSH_KEY_PATH = '~/.ssh/ykube-key.pub'
# Name of the key pair registered in the cloud. Shared by every cluster.
SSH_KEY_NAME = 'DO_NOT_REMOVE_K8S_KEY'


def _generate_rsa_key_pair() -> Tuple[str, str]:
    key = rsa.generate_private_key(backend=default_backend(),
                                   public_exponent=65537,
                                   key_size=2048)

    private_key = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption()).decode('utf-8')

    public_key = key.public_key().public_bytes(
        serialization.Encoding.OpenSSH,
        serialization.PublicFormat.OpenSSH).decode('utf-8')

    return public_key, private_key


def _save_key_pair(private_key_path: str, public_key_path: str,
                   private_key: str, public_key: str) -> None:
    private_key_dir = os.path.dirname(private_key_path)
    os.makedirs(private_key_dir, exist_ok=True)

    with open(
            private_key_path,
            'w',
            opener=functools.partial(os.open, mode=0o600),
    ) as f:
        f.write(private_key)

    with open(public_key_path, 'w') as f:
        f.write(public_key)


def get_or_generate_keys(
        private_key_path: Optional[str] = None) -> Tuple[str, str]:
    """Returns the absolute private and public key paths.

    A new RSA key pair is written there if the private key does not exist.
    The public key is expected next to the private key, with a `.pub`
    suffix.
    """
    if private_key_path is None:
        private_key_path = PRIVATE_SSH_KEY_PATH
        public_key_path = PUBLIC_SSH_KEY_PATH
    else:
        public_key_path = private_key_path + '.pub'
    private_key_path = os.path.expanduser(private_key_path)
    public_key_path = os.path.expanduser(public_key_path)
    if not os.path.exists(private_key_path):
        logger.info(f'Generating a new ssh key pair at {private_key_path}')
        public_key, private_key = _generate_rsa_key_pair()
        _save_key_pair(private_key_path, public_key_path, private_key,
                       public_key)
    elif not os.path.exists(public_key_path):
        raise exceptions.SSHKeyPreparationError(
            'Private key found, but associated public key '
            f'{public_key_path} does not exist.')
    return private_key_path, public_key_path


def read_public_key(public_key_path: str) -> str:
    try:
        with open(os.path.expanduser(public_key_path), 'r') as f:
            return f.read()
    except OSError as e:
        logger.error('Failed to read ssh public key')
        raise exceptions.SSHKeyPreparationError(
            f'Failed to read ssh public key {public_key_path}: {e}') from e


def prepare_ssh_key(key_service: interfaces.KeyPairService,
                    public_key_path: str, use_exist_key: bool) -> str:
    """Returns the ID of the cloud key pair to launch instances with.

    With `use_exist_key`, the key pair named SSH_KEY_NAME is reused when it
    exists. Otherwise a new key pair is registered from the local public key.

    Raises:
        SSHKeyPreparationError: if the public key cannot be read, or the key
            pair cannot be looked up or created.
    """
    public_key = read_public_key(public_key_path)
    if use_exist_key:
        logger.info('Try to get exist keypair')
        try:
            key_id = key_service.get_key_pair_by_name(SSH_KEY_NAME)
        except Exception as e:  # pylint: disable=broad-except
            raise exceptions.SSHKeyPreparationError(
                f'Failed to look up key pair {SSH_KEY_NAME}: {e}') from e
        if key_id:
            return key_id
        logger.warning('Cannot find any exist key, will create a new one')
    logger.info('Try to create a new ssh key')
    try:
        return key_service.create_ssh_key(SSH_KEY_NAME, public_key)
    except Exception as e:  # pylint: disable=broad-except
        raise exceptions.SSHKeyPreparationError(
            f'Failed to create key pair {SSH_KEY_NAME}: {e}') from e
