"""
Deploy a kubeadm cluster of one master and N nodes on cloud instances.

Creation runs in a fixed order: resolve the cluster tag, prepare the ssh key,
create master and nodes in parallel, tag them, bring the master up with
`kubeadm init`, apply the CNI plugin, join the nodes one at a time, and
optionally copy the admin kubeconfig to local disk.

Any failure stops the run. Nothing created so far is deleted; the tag put on
the instances lets `delete_cluster` clean them up later.
"""
import concurrent.futures
import dataclasses
import functools
import os
import time
from typing import List, Optional

from ykube import authentication
from ykube import exceptions
from ykube import kubeadm
from ykube import presets as presets_lib
from ykube import ykube_logging
from ykube.provision import common
from ykube.provision import interfaces
from ykube.utils import command_runner

logger = ykube_logging.init_logger(__name__)

KUBECONFIG_FILE_NAME = 'kubeconfig'


@dataclasses.dataclass(frozen=True)
class ClusterCreationRequest:
    cluster_name: str
    kubernetes_version: str
    node_count: int
    network: kubeadm.NetworkOption
    instance_class: int = 0
    vxnet_id: str = ''
    zone: str = ''
    use_exist_key: bool = False
    scp_kubeconfig_to_local: bool = False
    local_kubeconfig_path: str = '.'


@dataclasses.dataclass(frozen=True)
class ClusterEndpoint:
    """What a successful creation produced."""
    cluster_name: str
    tag_id: str
    master: common.Instance
    nodes: List[common.Instance]
    kubeconfig_path: Optional[str] = None

    @property
    def master_id(self) -> str:
        return self.master.id

    @property
    def master_ip(self) -> str:
        return self.master.ip_address


def _decode(output: bytes) -> str:
    return output.decode('utf-8', errors='replace')


class ClusterOrchestrator:
    """Creates and deletes clusters on top of the provisioning services.

    Args:
        instance_service, tag_service, key_service: cloud collaborators.
        runner: runs commands on the instances.
        presets: the catalog of supported Kubernetes versions.
        public_key_path: local public key registered as the instance key.
    """

    def __init__(self,
                 instance_service: interfaces.InstanceService,
                 tag_service: interfaces.TagService,
                 key_service: interfaces.KeyPairService,
                 runner: command_runner.CommandRunner,
                 presets: presets_lib.PresetCatalog,
                 public_key_path: str = authentication.PUBLIC_SSH_KEY_PATH
                ) -> None:
        self._instance_service = instance_service
        self._tag_service = tag_service
        self._key_service = key_service
        self._runner = runner
        self._presets = presets
        self._public_key_path = public_key_path

    def _validate_create_input(
            self, request: ClusterCreationRequest) -> presets_lib.Preset:
        if not request.cluster_name or not request.cluster_name.strip():
            raise exceptions.InvalidInputError('ClusterName cannot be empty')
        if request.node_count < 0:
            raise exceptions.InvalidInputError(
                f'Node count must not be negative, got {request.node_count}')
        preset = self._presets.get_preset(request.kubernetes_version)
        # Rejects a bad CNI or pod CIDR before anything is provisioned.
        kubeadm.generate_kubeadm_init_cmd(request.network,
                                          request.kubernetes_version)
        return preset

    def resolve_tag(self, cluster_name: str) -> str:
        """Returns the ID of the cluster's tag, creating the tag if needed."""
        name = common.cluster_tag_name(cluster_name)
        try:
            tag = self._tag_service.get_tag_by_name(name)
        except Exception as e:  # pylint: disable=broad-except
            logger.error('Failed to get current tag')
            raise exceptions.TagOperationError(
                f'Failed to look up tag {name}: {e}') from e
        if tag is not None:
            logger.debug(f'Reusing tag {name} ({tag.tag_id})')
            return tag.tag_id
        try:
            return self._tag_service.create_tag(name)
        except Exception as e:  # pylint: disable=broad-except
            logger.error(f'Failed to create tag {name}')
            raise exceptions.TagOperationError(
                f'Failed to create tag {name}: {e}') from e

    def create_cluster(self,
                       request: ClusterCreationRequest) -> ClusterEndpoint:
        start = time.time()
        try:
            return self._create_cluster(request)
        finally:
            logger.info(f'Finished, time cost(s): {int(time.time() - start)}')

    def _create_cluster(self,
                        request: ClusterCreationRequest) -> ClusterEndpoint:
        preset = self._validate_create_input(request)

        logger.info('Prepare Tag')
        tag_id = self.resolve_tag(request.cluster_name)

        logger.info('Prepare ssh key')
        key_id = authentication.prepare_ssh_key(self._key_service,
                                                self._public_key_path,
                                                request.use_exist_key)

        option = functools.partial(common.CreateInstancesOption,
                                   name=request.cluster_name,
                                   vxnet_id=request.vxnet_id,
                                   preset=preset,
                                   instance_class=request.instance_class,
                                   ssh_key_id=key_id)
        master, nodes = self._create_machines(
            option(count=1, role=common.ROLE_MASTER),
            option(count=request.node_count, role=common.ROLE_NODE))

        logger.info('Tagging all machines')
        instance_ids = [master.id] + [node.id for node in nodes]
        try:
            self._tag_service.tag_instances(tag_id, instance_ids)
        except Exception as e:  # pylint: disable=broad-except
            raise exceptions.TagAssociationError(
                f'Failed to tag instances {instance_ids} with {tag_id}: {e}',
                instance_ids) from e

        logger.info('Machines are ready, bring the cluster up')
        join_cmd = self.initialize_control_plane(master, request)
        logger.info('Applying CNI')
        self.apply_cni(master, preset, request.network.cni_name)
        logger.info('CNI is applied now')
        logger.info('Joining nodes')
        self.join_nodes(nodes, join_cmd)

        kubeconfig_path = None
        if request.scp_kubeconfig_to_local:
            logger.info('Transfer kubeconfig to local')
            kubeconfig_path = self.export_kubeconfig(
                master, request.local_kubeconfig_path)
            logger.info(
                'kubeconfig has been copied to local, type '
                f'\'export KUBECONFIG={kubeconfig_path}; kubectl cluster-info\''
                ' to have a try')
        logger.info('Congratulations! The cluster is ready now, the master is '
                    f'[ID: {master.id},IP: {master.ip_address}], check it out')
        return ClusterEndpoint(cluster_name=request.cluster_name,
                               tag_id=tag_id,
                               master=master,
                               nodes=nodes,
                               kubeconfig_path=kubeconfig_path)

    def _create_machines(self, master_option: common.CreateInstancesOption,
                         nodes_option: common.CreateInstancesOption):
        """Creates master and nodes in parallel; fails if either side fails.

        Each branch hands back its own result or exception through its
        future. Both always run to completion before results are examined.
        """
        logger.info('Creating Master')
        with concurrent.futures.ThreadPoolExecutor(
                max_workers=2, thread_name_prefix='ykube-provision') as pool:
            master_future = pool.submit(self._instance_service.create_instances,
                                        master_option)
            logger.info('Creating Nodes')
            nodes_future = pool.submit(self._instance_service.create_instances,
                                       nodes_option)
            logger.info('Waiting for machines to start')
            concurrent.futures.wait([master_future, nodes_future])

        errors: List[Exception] = []
        created: List[common.Instance] = []
        masters: List[common.Instance] = []
        nodes: List[common.Instance] = []
        for future, option, out in ((master_future, master_option, masters),
                                    (nodes_future, nodes_option, nodes)):
            error = future.exception()
            if error is not None:
                errors.append(error)
                continue
            out.extend(future.result())
            created.extend(out)
            if len(out) != option.count:
                errors.append(
                    RuntimeError(f'Expected {option.count} {option.role} '
                                 f'instances, got {len(out)}'))
        if errors:
            created_ids = [instance.id for instance in created]
            logger.error(f'Creating machines failed: {errors}')
            raise exceptions.ProvisioningError(errors, created_ids)

        master = masters[0]
        logger.info(f'Master creating done, id={master.id}, '
                    f'ip={master.ip_address}')
        for node in nodes:
            logger.info(f'Nodes creating done, id={node.id}, '
                        f'ip={node.ip_address}')
        return master, nodes

    def initialize_control_plane(self, master: common.Instance,
                                 request: ClusterCreationRequest) -> str:
        """Runs `kubeadm init` on the master; returns the node join command."""
        cmd = kubeadm.generate_kubeadm_init_cmd(request.network,
                                                request.kubernetes_version)
        try:
            output = self._runner.run(master.ip_address,
                                      kubeadm.with_swap_off(cmd))
        except exceptions.CommandError as e:
            logger.debug(_decode(e.output))
            logger.error('Failed to run \'kubeadm init\'')
            raise exceptions.BootstrapExecutionError(
                f'Failed to bootstrap master {master.id} '
                f'{master.ip_address}: {e}') from e
        output_str = _decode(output)
        logger.debug(output_str)
        logger.info('Getting \'kubeadm join\'')
        return kubeadm.get_kube_join_from_output(output_str)

    def apply_cni(self, master: common.Instance, preset: presets_lib.Preset,
                  cni_name: str) -> None:
        cmd = kubeadm.apply_cni_cmd(preset.cni_manifest_path, cni_name)
        try:
            output = self._runner.run(master.ip_address, cmd)
        except exceptions.CommandError as e:
            logger.debug(_decode(e.output))
            logger.error(f'Failed to apply CNI plugin {cni_name}')
            raise exceptions.CNIApplyError(
                f'Failed to apply CNI plugin {cni_name}: {e}') from e
        logger.debug(_decode(output))

    def join_nodes(self, nodes: List[common.Instance],
                   join_cmd: str) -> List[common.Instance]:
        """Joins the nodes one at a time, in the given order.

        Stops at the first failure. Nodes joined before it stay joined and
        the rest are never attempted.
        """
        joined: List[common.Instance] = []
        for i, node in enumerate(nodes):
            try:
                output = self._runner.run(node.ip_address,
                                          kubeadm.with_swap_off(join_cmd))
            except exceptions.CommandError as e:
                if e.output:
                    logger.debug(_decode(e.output))
                logger.error(f'Failed to join {node.id} {node.ip_address} '
                             'to cluster')
                raise exceptions.NodeJoinError(node, joined,
                                               nodes[i + 1:]) from e
            if output:
                logger.debug(_decode(output))
            joined.append(node)
            logger.info(f'{node.ip_address} has successfully joined the '
                        'cluster')
        return joined

    def export_kubeconfig(self, master: common.Instance,
                          local_path: str) -> str:
        """Copies the admin kubeconfig of the master to `local_path`.

        The file is written as `<local_path>/kubeconfig`, readable by the
        owner only. Returns its path.
        """
        try:
            content = self._runner.run(master.ip_address,
                                       kubeadm.cat_kubeconfig_cmd())
        except exceptions.CommandError as e:
            logger.error(_decode(e.output))
            raise exceptions.CredentialExportError(
                f'Failed to read kubeconfig from {master.ip_address}: {e}'
            ) from e
        local_dir = os.path.expanduser(local_path)
        path = os.path.join(local_dir, KUBECONFIG_FILE_NAME)
        try:
            os.makedirs(local_dir, exist_ok=True)
            with open(
                    path,
                    'wb',
                    opener=functools.partial(os.open, mode=0o600),
            ) as f:
                f.write(content)
            # The opener mode only applies when the file is created.
            os.chmod(path, 0o600)
        except OSError as e:
            logger.error('Failed to write kubeconfig')
            raise exceptions.CredentialExportError(
                f'Failed to write kubeconfig to {path}: {e}') from e
        return path

    def delete_cluster(self, cluster_name: str) -> List[str]:
        """Terminates every instance carrying the cluster tag, then the tag.

        Returns the IDs of the terminated instances.
        """
        if not cluster_name:
            raise exceptions.InvalidInputError('ClusterName cannot be empty')
        name = common.cluster_tag_name(cluster_name)
        try:
            tag = self._tag_service.get_tag_by_name(name)
        except Exception as e:  # pylint: disable=broad-except
            raise exceptions.TagOperationError(
                f'Failed to look up tag {name}: {e}') from e
        if tag is None:
            raise exceptions.ClusterNotFoundError(
                f'Cluster {cluster_name} not found: no tag named {name}')
        try:
            instance_ids = self._tag_service.get_tagged_instances(tag.tag_id)
        except Exception as e:  # pylint: disable=broad-except
            raise exceptions.TagOperationError(
                f'Failed to list instances tagged {name}: {e}') from e
        if instance_ids:
            logger.info(f'Terminating instances {instance_ids}')
            try:
                self._instance_service.terminate_instances(instance_ids)
            except Exception as e:  # pylint: disable=broad-except
                raise exceptions.ProvisioningError([e], instance_ids) from e
        else:
            logger.warning(f'No instance is tagged with {name}')
        logger.info(f'Deleting tag {name}')
        try:
            self._tag_service.delete_tag(tag.tag_id)
        except Exception as e:  # pylint: disable=broad-except
            raise exceptions.TagOperationError(
                f'Failed to delete tag {name}: {e}') from e
        return instance_ids
