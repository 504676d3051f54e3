"""Exceptions raised while creating or deleting a cluster.

Every error is fatal to the run. Each class records the stage it belongs to
so that the CLI can tell the operator where the run stopped. Cloud resources
created before the failure are never deleted automatically; where they are
known, they are carried on the exception.
"""
from typing import List, Optional, Sequence

from ykube.utils import common_utils

STAGE_INPUT = 'input'
STAGE_TAG = 'tag'
STAGE_KEY = 'key'
STAGE_PROVISIONING = 'provisioning'
STAGE_BOOTSTRAP = 'bootstrap'
STAGE_CNI = 'cni'
STAGE_JOIN = 'join'
STAGE_EXPORT = 'export'
STAGE_DELETE = 'delete'


class YKubeError(Exception):
    """Base class of every error raised by ykube."""
    stage: str = STAGE_INPUT

    def __str__(self) -> str:
        return f'[{self.stage}] {super().__str__()}'


class InvalidInputError(YKubeError):
    """Raised when the cluster creation request is malformed."""
    stage = STAGE_INPUT


class UnsupportedVersionError(YKubeError):
    """Raised when a Kubernetes version has no preset."""
    stage = STAGE_INPUT

    def __init__(self, version: str) -> None:
        super().__init__(
            f'Currently we do not support k8s version {version}')
        self.version = version


class SSHKeyPreparationError(YKubeError):
    """Raised when the local or remote ssh key cannot be prepared."""
    stage = STAGE_KEY


class TagOperationError(YKubeError):
    """Raised when looking up or creating the cluster tag fails."""
    stage = STAGE_TAG


class TagAssociationError(YKubeError):
    """Raised when attaching the cluster tag to the instances fails."""
    stage = STAGE_TAG

    def __init__(self, message: str, instance_ids: Sequence[str]) -> None:
        super().__init__(message)
        self.instance_ids = list(instance_ids)


class ProvisioningError(YKubeError):
    """Raised when creating (or terminating) instances fails.

    Attributes:
        errors: every error collected from the provisioning branches.
        created_instance_ids: instances that exist in the cloud even though
            the run failed. They are left for the operator to clean up.
    """
    stage = STAGE_PROVISIONING

    def __init__(self,
                 errors: Sequence[Exception],
                 created_instance_ids: Optional[Sequence[str]] = None) -> None:
        self.errors: List[Exception] = list(errors)
        self.created_instance_ids: List[str] = list(created_instance_ids or [])
        details = '; '.join(
            common_utils.format_exception(e) for e in self.errors)
        message = f'Creating machines failed, errs: {details}'
        if self.created_instance_ids:
            message += (' (instances left running: '
                        f'{", ".join(self.created_instance_ids)})')
        super().__init__(message)


class UnsupportedCNIError(YKubeError):
    """Raised when the CNI plugin is not one of the supported presets."""
    stage = STAGE_BOOTSTRAP

    def __init__(self, cni_name: str) -> None:
        super().__init__(f'CNI plugin {cni_name} is not supported right now')
        self.cni_name = cni_name


class MissingPodCIDRError(YKubeError):
    """Raised when no pod network CIDR is given."""
    stage = STAGE_BOOTSTRAP

    def __init__(self) -> None:
        super().__init__('Must specify a network for pod')


class BootstrapExecutionError(YKubeError):
    """Raised when `kubeadm init` fails on the master."""
    stage = STAGE_BOOTSTRAP


class JoinDirectiveNotFoundError(YKubeError):
    """Raised when the bootstrap output carries no `kubeadm join` command."""
    stage = STAGE_BOOTSTRAP


class CNIApplyError(YKubeError):
    """Raised when the network plugin manifest cannot be applied."""
    stage = STAGE_CNI


class NodeJoinError(YKubeError):
    """Raised on the first node that fails to join the cluster.

    Attributes:
        node: the instance whose join failed.
        joined: nodes that joined before the failure. They stay joined.
        pending: nodes that were never attempted.
    """
    stage = STAGE_JOIN

    def __init__(self, node, joined, pending) -> None:
        super().__init__(
            f'Failed to join {node.id} {node.ip_address} to cluster')
        self.node = node
        self.joined = list(joined)
        self.pending = list(pending)


class CredentialExportError(YKubeError):
    """Raised when the admin kubeconfig cannot be copied to local disk."""
    stage = STAGE_EXPORT


class ClusterNotFoundError(YKubeError):
    """Raised when deleting a cluster whose tag does not exist."""
    stage = STAGE_DELETE


class CommandError(Exception):
    """Raised by the command runner when a remote command fails.

    Attributes:
        host: address the command ran on.
        command: the command string.
        returncode: exit code, or None when the command never completed.
        output: whatever the command printed before failing.
    """

    def __init__(self,
                 host: str,
                 command: str,
                 returncode: Optional[int],
                 output: bytes = b'',
                 reason: str = '') -> None:
        self.host = host
        self.command = command
        self.returncode = returncode
        self.output = output
        message = f'Command {command!r} failed on {host}'
        if returncode is not None:
            message += f' with exit code {returncode}'
        if reason:
            message += f': {reason}'
        super().__init__(message)
