"""
Shared pytest fixtures for ykube tests.

This module provides in-memory fakes of the cloud services and of the
command runner, so that the orchestrator can be driven end to end without
a cloud account or any ssh connection:
- FakeInstanceService: returns canned instances per role, or raises
- FakeTagService: a dict of tags and their instances
- FakeKeyPairService: a dict of key pairs
- FakeRunner: pattern-matched command responses, records every call
"""
import re
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Tuple

import pytest

from ykube import cluster as cluster_lib
from ykube import exceptions
from ykube import kubeadm
from ykube import presets as presets_lib
from ykube.provision import common
from ykube.provision import interfaces
from ykube.utils import command_runner

KUBEADM_INIT_OUTPUT = b"""[init] Using Kubernetes version: v1.15.2
[preflight] Running pre-flight checks
Your Kubernetes control-plane has initialized successfully!

You can now join any number of worker nodes by running the following on each as root:

kubeadm join 192.168.0.2:6443 --token abcdef.0123456789abcdef \\
    --discovery-token-ca-cert-hash sha256:0123456789
"""

JOIN_CMD = ('kubeadm join 192.168.0.2:6443 --token abcdef.0123456789abcdef '
            '\\\n    --discovery-token-ca-cert-hash sha256:0123456789')

KUBECONFIG = b'apiVersion: v1\nkind: Config\nclusters: []\n'


# =============================================================================
# Cloud service fakes
# =============================================================================

class FakeInstanceService(interfaces.InstanceService):
    """Creates instances with predictable IDs and IPs.

    Set `errors[role]` to make creation of that role fail. Set `barrier` to
    a threading.Barrier to require both roles to be created concurrently.
    """

    def __init__(self) -> None:
        self.errors: Dict[str, Exception] = {}
        self.barrier: Optional[threading.Barrier] = None
        self.options: List[common.CreateInstancesOption] = []
        self.terminated: List[str] = []
        self._lock = threading.Lock()

    def create_instances(self, option):
        with self._lock:
            self.options.append(option)
        if self.barrier is not None:
            self.barrier.wait()
        if option.role in self.errors:
            raise self.errors[option.role]
        if option.role == common.ROLE_MASTER:
            return [common.Instance('i-master', option.role, '192.168.0.2')]
        return [
            common.Instance(f'i-node{i}', option.role, f'192.168.0.{10 + i}')
            for i in range(option.count)
        ]

    def terminate_instances(self, instance_ids):
        self.terminated.extend(instance_ids)


class FakeTagService(interfaces.TagService):

    def __init__(self) -> None:
        self.tags: Dict[str, str] = {}
        self.tagged: Dict[str, List[str]] = {}
        self.created: List[str] = []
        self.deleted: List[str] = []
        self.fail_lookup = False
        self.fail_tagging = False

    def get_tag_by_name(self, name):
        if self.fail_lookup:
            raise RuntimeError('DescribeTags failed')
        if name in self.tags:
            return common.Tag(tag_id=self.tags[name], name=name)
        return None

    def create_tag(self, name):
        tag_id = f'tag-{len(self.tags) + 1}'
        self.tags[name] = tag_id
        self.created.append(name)
        return tag_id

    def tag_instances(self, tag_id, instance_ids):
        if self.fail_tagging:
            raise RuntimeError('AttachTags failed')
        self.tagged.setdefault(tag_id, []).extend(instance_ids)

    def get_tagged_instances(self, tag_id):
        return list(self.tagged.get(tag_id, []))

    def delete_tag(self, tag_id):
        self.deleted.append(tag_id)
        self.tags = {k: v for k, v in self.tags.items() if v != tag_id}


class FakeKeyPairService(interfaces.KeyPairService):

    def __init__(self) -> None:
        self.keys: Dict[str, str] = {}
        self.fail_create = False

    def get_key_pair_by_name(self, name):
        return self.keys.get(name, '')

    def create_ssh_key(self, name, public_key):
        if self.fail_create:
            raise RuntimeError('CreateKeyPair failed')
        key_id = f'kp-{len(self.keys) + 1}'
        self.keys[name] = key_id
        return key_id


# =============================================================================
# Command runner fake
# =============================================================================

@dataclass
class RunnerResponse:
    output: bytes = b''
    returncode: int = 0


@dataclass
class FakeRunner(command_runner.CommandRunner):
    """Answers commands from (host, pattern) rules, first match wins.

    Commands with no matching rule succeed with empty output.
    """
    rules: List[Tuple[Optional[str], Pattern, RunnerResponse]] = field(
        default_factory=list)
    calls: List[Tuple[str, str]] = field(default_factory=list)

    def add(self, pattern: str, output: bytes = b'', returncode: int = 0,
            host: Optional[str] = None) -> None:
        self.rules.append(
            (host, re.compile(pattern), RunnerResponse(output, returncode)))

    def run(self, host, cmd):
        self.calls.append((host, cmd))
        for rule_host, pattern, response in self.rules:
            if rule_host not in (None, host) or not pattern.search(cmd):
                continue
            if response.returncode != 0:
                raise exceptions.CommandError(host, cmd, response.returncode,
                                              output=response.output)
            return response.output
        return b''

    def hosts_for(self, pattern: str) -> List[str]:
        regex = re.compile(pattern)
        return [host for host, cmd in self.calls if regex.search(cmd)]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def instance_service():
    return FakeInstanceService()


@pytest.fixture
def tag_service():
    return FakeTagService()


@pytest.fixture
def key_service():
    return FakeKeyPairService()


@pytest.fixture
def runner():
    runner = FakeRunner()
    runner.add(r'kubeadm init', output=KUBEADM_INIT_OUTPUT)
    runner.add(r'cat /etc/kubernetes/admin.conf', output=KUBECONFIG)
    return runner


@pytest.fixture
def public_key_path(tmp_path):
    path = tmp_path / 'ykube-key.pub'
    path.write_text('ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAABAQ test@ykube\n')
    return str(path)


@pytest.fixture
def orchestrator(instance_service, tag_service, key_service, runner,
                 public_key_path):
    return cluster_lib.ClusterOrchestrator(instance_service,
                                           tag_service,
                                           key_service,
                                           runner,
                                           presets_lib.default_catalog(),
                                           public_key_path=public_key_path)


@pytest.fixture
def make_request():

    def _make(**overrides):
        fields = dict(cluster_name='demo',
                      kubernetes_version='1.15.2',
                      node_count=2,
                      network=kubeadm.NetworkOption(cni_name='flannel',
                                                    pod_cidr='10.244.0.0/16'),
                      vxnet_id='vxnet-abc',
                      zone='ap2a')
        fields.update(overrides)
        return cluster_lib.ClusterCreationRequest(**fields)

    return _make
