"""Commands run on the cluster hosts, and parsing of their output."""
import dataclasses

from ykube import exceptions

CALICO_CNI = 'calico'
FLANNEL_CNI = 'flannel'
SUPPORTED_CNIS = (CALICO_CNI, FLANNEL_CNI)

KUBECONFIG_FILE_PATH = '/etc/kubernetes/admin.conf'
JOIN_MARKER = 'kubeadm join'
SWAP_OFF = 'swapoff -a'


@dataclasses.dataclass(frozen=True)
class NetworkOption:
    cni_name: str
    pod_cidr: str


def generate_kubeadm_init_cmd(network: NetworkOption, version: str) -> str:
    """Returns the `kubeadm init` command for the master.

    Raises:
        MissingPodCIDRError: if no pod CIDR is set, whatever the CNI.
        UnsupportedCNIError: if the CNI is not calico or flannel.
    """
    if not network.pod_cidr:
        raise exceptions.MissingPodCIDRError()
    if network.cni_name not in SUPPORTED_CNIS:
        raise exceptions.UnsupportedCNIError(network.cni_name)
    return (f'kubeadm init --pod-network-cidr={network.pod_cidr} '
            f'--kubernetes-version=v{version}')


def get_kube_join_from_output(output: str) -> str:
    """Returns the join command printed by `kubeadm init`.

    The command starts at the last `kubeadm join` in the trimmed output and
    runs to its end.

    Raises:
        JoinDirectiveNotFoundError: if the output has no `kubeadm join`, or
            nothing follows the last one.
    """
    output = output.strip()
    index = output.rfind(JOIN_MARKER)
    if index < 0:
        raise exceptions.JoinDirectiveNotFoundError(
            f'No {JOIN_MARKER!r} found in the output of kubeadm init')
    if not output[index + len(JOIN_MARKER):].strip():
        raise exceptions.JoinDirectiveNotFoundError(
            f'{JOIN_MARKER!r} in the output of kubeadm init has no arguments')
    return output[index:]


def with_swap_off(cmd: str) -> str:
    # kubelet refuses to start with swap on.
    return f'{SWAP_OFF}; {cmd}'


def apply_cni_cmd(cni_manifest_path: str, cni_name: str) -> str:
    return (f'kubectl --kubeconfig={KUBECONFIG_FILE_PATH} apply -f '
            f'{cni_manifest_path}/{cni_name}/')


def cat_kubeconfig_cmd() -> str:
    return f'cat {KUBECONFIG_FILE_PATH}'
