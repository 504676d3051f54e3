"""Common data structure for provisioning"""
import dataclasses

from ykube import presets as presets_lib

ROLE_MASTER = 'master'
ROLE_NODE = 'node'


@dataclasses.dataclass(frozen=True)
class Instance:
    """A created compute instance. Never mutated once returned."""
    id: str
    role: str
    ip_address: str


@dataclasses.dataclass(frozen=True)
class CreateInstancesOption:
    """Everything needed to create `count` instances of one role."""
    name: str
    vxnet_id: str
    count: int
    role: str
    preset: presets_lib.Preset
    instance_class: int
    ssh_key_id: str

    @property
    def image_id(self) -> str:
        if self.role == ROLE_MASTER:
            return self.preset.master_image_id
        return self.preset.node_image_id

    @property
    def cpu(self) -> int:
        if self.role == ROLE_MASTER:
            return self.preset.master_cpu
        return self.preset.node_cpu

    @property
    def memory(self) -> int:
        if self.role == ROLE_MASTER:
            return self.preset.master_memory
        return self.preset.node_memory


@dataclasses.dataclass(frozen=True)
class Tag:
    tag_id: str
    name: str


def cluster_tag_name(cluster_name: str) -> str:
    return f'K8S-Cluster-{cluster_name}'


def instance_name(cluster_name: str, role: str) -> str:
    return f'{cluster_name}-{role}'
