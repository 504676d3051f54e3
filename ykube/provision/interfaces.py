"""Interfaces of the cloud services the orchestrator depends on.

Implementations raise any exception on failure; the orchestrator maps it to
the stage it was called from.
"""
import abc
from typing import List, Optional

from ykube.provision import common


class InstanceService(abc.ABC):

    @abc.abstractmethod
    def create_instances(
            self, option: common.CreateInstancesOption) -> List[common.Instance]:
        """Creates `option.count` instances and waits until they are running.

        Either every instance is returned, with its IP address, in a stable
        order, or an exception is raised for the whole batch.
        """

    @abc.abstractmethod
    def terminate_instances(self, instance_ids: List[str]) -> None:
        pass


class TagService(abc.ABC):

    @abc.abstractmethod
    def get_tag_by_name(self, name: str) -> Optional[common.Tag]:
        """Returns the tag called `name`, or None if there is none."""

    @abc.abstractmethod
    def create_tag(self, name: str) -> str:
        """Creates a tag and returns its ID."""

    @abc.abstractmethod
    def tag_instances(self, tag_id: str, instance_ids: List[str]) -> None:
        pass

    @abc.abstractmethod
    def get_tagged_instances(self, tag_id: str) -> List[str]:
        """Returns the IDs of the instances the tag is attached to."""

    @abc.abstractmethod
    def delete_tag(self, tag_id: str) -> None:
        pass


class KeyPairService(abc.ABC):

    @abc.abstractmethod
    def get_key_pair_by_name(self, name: str) -> str:
        """Returns the key pair ID, or '' if no key pair has that name."""

    @abc.abstractmethod
    def create_ssh_key(self, name: str, public_key: str) -> str:
        """Registers `public_key` under `name` and returns the key pair ID."""
