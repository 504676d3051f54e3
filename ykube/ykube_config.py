"""User configuration, read from ~/.ykube/config.yaml.

Example:

    qingcloud:
      access_key_id: QYACCESSKEYIDEXAMPLE
      secret_access_key: SECRETACCESSKEY
      zone: ap2a
    ssh:
      user: root
      private_key_path: ~/.ssh/ykube-key
      connect_timeout: 30
      command_timeout: 1200
    presets:
      1.16.0:
        master_image_id: img-xxxxxxxx
        node_image_id: img-yyyyyyyy
        master_cpu: 4
        master_memory: 8192
        node_cpu: 4
        node_memory: 8192
        cni_manifest_path: /root/CNI

The path can be overridden with the YKUBE_CONFIG environment variable.
"""
import os
from typing import Any, Dict, Iterable, Optional

import yaml

from ykube import exceptions
from ykube import ykube_logging
from ykube.utils import common_utils

logger = ykube_logging.init_logger(__name__)

CONFIG_PATH = '~/.ykube/config.yaml'
ENV_VAR_YKUBE_CONFIG = 'YKUBE_CONFIG'

DEFAULT_SSH_USER = 'root'
DEFAULT_CONNECT_TIMEOUT = 30
# kubeadm init pulls images and can take several minutes.
DEFAULT_COMMAND_TIMEOUT = 1200


class Config:
    """A loaded user config. Missing file means an empty config."""

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 path: Optional[str] = None) -> None:
        self._config = config or {}
        self.path = path

    def get_nested(self, keys: Iterable[str], default_value: Any) -> Any:
        """Gets a nested key.

        If any key is not found, or any intermediate key does not point to a
        dict value, returns 'default_value'.
        """
        curr = self._config
        for key in keys:
            if isinstance(curr, dict) and key in curr:
                curr = curr[key]
            else:
                return default_value
        return curr

    @property
    def zone(self) -> Optional[str]:
        return self.get_nested(('qingcloud', 'zone'), None)

    @property
    def ssh_user(self) -> str:
        return self.get_nested(('ssh', 'user'), DEFAULT_SSH_USER)

    @property
    def ssh_private_key_path(self) -> Optional[str]:
        return self.get_nested(('ssh', 'private_key_path'), None)

    @property
    def connect_timeout(self) -> float:
        return float(
            self.get_nested(('ssh', 'connect_timeout'),
                            DEFAULT_CONNECT_TIMEOUT))

    @property
    def command_timeout(self) -> float:
        return float(
            self.get_nested(('ssh', 'command_timeout'),
                            DEFAULT_COMMAND_TIMEOUT))

    @property
    def presets(self) -> Dict[str, Dict[str, Any]]:
        return self.get_nested(('presets',), {}) or {}


def load(path: Optional[str] = None) -> Config:
    """Loads the config from `path`, $YKUBE_CONFIG or the default location.

    Raises:
        InvalidInputError: if the file exists but is not a yaml mapping.
    """
    if path is None:
        path = os.environ.get(ENV_VAR_YKUBE_CONFIG, CONFIG_PATH)
    config_path = os.path.expanduser(path)
    if not os.path.exists(config_path):
        logger.debug(f'Config file {config_path} does not exist.')
        return Config(path=config_path)
    try:
        config = common_utils.read_yaml(config_path)
    except yaml.YAMLError as e:
        raise exceptions.InvalidInputError(
            f'Invalid config file {config_path}: {e}') from e
    if config is None:
        config = {}
    if not isinstance(config, dict):
        raise exceptions.InvalidInputError(
            f'Invalid config file {config_path}: expected a mapping, '
            f'got {type(config).__name__}')
    logger.debug(f'Config loaded from {config_path}')
    return Config(config, path=config_path)
