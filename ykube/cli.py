"""The 'ykube' command line tool.

Example usage:

  # Create a cluster with one master and two nodes.
  >> ykube create -n demo --vxnet vxnet-abcdefg --zone ap2a

  # Same, and copy the admin kubeconfig to ~/.kube/demo/kubeconfig.
  >> ykube create -n demo --vxnet vxnet-abcdefg --scp-kubeconfig \
       --local-kubeconfig-path ~/.kube/demo

  # Tear a cluster down.
  >> ykube delete -n demo

  # Show the supported Kubernetes versions.
  >> ykube presets
"""
import sys
from typing import Optional

import click
import colorama

from ykube import authentication
from ykube import cluster as cluster_lib
from ykube import exceptions
from ykube import kubeadm
from ykube import presets as presets_lib
from ykube import ykube_config
from ykube import ykube_logging
from ykube.provision import qingcloud
from ykube.utils import command_runner
from ykube.utils import common_utils
from ykube.utils import ux_utils

_DEFAULT_KUBERNETES_VERSION = '1.15.2'
_DEFAULT_POD_CIDR = '10.244.0.0/16'


def _load_catalog(config: ykube_config.Config) -> presets_lib.PresetCatalog:
    return presets_lib.default_catalog().with_overrides(config.presets)


def _build_orchestrator(
        config: ykube_config.Config,
        zone: Optional[str]) -> cluster_lib.ClusterOrchestrator:
    try:
        instance_service, tag_service, key_service = qingcloud.make_services(
            config, zone)
    except exceptions.YKubeError:
        raise
    except ImportError as e:
        raise exceptions.InvalidInputError(str(e)) from e
    except Exception as e:  # pylint: disable=broad-except
        raise exceptions.InvalidInputError(
            f'Cannot connect to QingCloud: {e}') from e
    try:
        private_key_path, public_key_path = (
            authentication.get_or_generate_keys(config.ssh_private_key_path))
    except OSError as e:
        raise exceptions.SSHKeyPreparationError(
            f'Cannot prepare the local ssh key pair: {e}') from e
    runner = command_runner.SSHCommandRunner(
        user=config.ssh_user,
        private_key_path=private_key_path,
        connect_timeout=config.connect_timeout,
        command_timeout=config.command_timeout)
    return cluster_lib.ClusterOrchestrator(instance_service,
                                           tag_service,
                                           key_service,
                                           runner,
                                           _load_catalog(config),
                                           public_key_path=public_key_path)


def _report_failure(e: exceptions.YKubeError) -> None:
    red = colorama.Fore.RED
    yellow = colorama.Fore.YELLOW
    reset = colorama.Style.RESET_ALL
    click.echo(f'{red}Failed: {e}{reset}', err=True)
    if isinstance(e, exceptions.ProvisioningError) and e.created_instance_ids:
        click.echo(
            f'{yellow}These instances were created and are NOT deleted '
            f'automatically: {", ".join(e.created_instance_ids)}{reset}',
            err=True)
    elif isinstance(e, exceptions.NodeJoinError):
        joined = ', '.join(node.id for node in e.joined) or 'none'
        pending = ', '.join(node.id for node in e.pending) or 'none'
        click.echo(f'{yellow}Joined nodes: {joined}; nodes not attempted: '
                   f'{pending}{reset}',
                   err=True)
    if e.stage not in (exceptions.STAGE_INPUT, exceptions.STAGE_KEY,
                       exceptions.STAGE_DELETE):
        click.echo(
            f'{yellow}Run `ykube delete -n <name>` to remove what was '
            f'created.{reset}',
            err=True)


@click.group()
@click.option('--config',
              'config_path',
              default=None,
              help='Path of the config file. Defaults to $YKUBE_CONFIG or '
              f'{ykube_config.CONFIG_PATH}.')
@click.option('--debug',
              is_flag=True,
              default=False,
              help='Show debug logs, including remote command output.')
@click.pass_context
def cli(ctx, config_path, debug):
    ykube_logging.set_verbosity(debug)
    with ux_utils.print_exception_no_traceback():
        ctx.obj = ykube_config.load(config_path)


@cli.command()
@click.option('--name', '-n', required=True, help='Name of the cluster.')
@click.option('--kubernetes-version',
              '-v',
              default=_DEFAULT_KUBERNETES_VERSION,
              show_default=True,
              help='Kubernetes version; see `ykube presets`.')
@click.option('--node-count',
              default=2,
              show_default=True,
              type=int,
              help='Number of worker nodes.')
@click.option('--vxnet', required=True, help='ID of the VxNet to use.')
@click.option('--instance-class',
              default=0,
              show_default=True,
              type=int,
              help='Instance class (0: performance, 1: high performance).')
@click.option('--zone',
              default=None,
              help='Zone to create the cluster in. Defaults to the config.')
@click.option('--cni',
              default=kubeadm.CALICO_CNI,
              show_default=True,
              help=f'CNI plugin, one of {", ".join(kubeadm.SUPPORTED_CNIS)}.')
@click.option('--pod-cidr',
              default=_DEFAULT_POD_CIDR,
              show_default=True,
              help='Network CIDR for pods.')
@click.option('--use-exist-key',
              is_flag=True,
              default=False,
              help='Reuse the ssh key pair already registered in the cloud.')
@click.option('--scp-kubeconfig',
              is_flag=True,
              default=False,
              help='Copy the admin kubeconfig to local disk.')
@click.option('--local-kubeconfig-path',
              default='.',
              show_default=True,
              help='Directory the kubeconfig is copied to.')
@click.pass_obj
def create(config, name, kubernetes_version, node_count, vxnet,
           instance_class, zone, cni, pod_cidr, use_exist_key, scp_kubeconfig,
           local_kubeconfig_path):
    """Create a Kubernetes cluster."""
    request = cluster_lib.ClusterCreationRequest(
        cluster_name=name,
        kubernetes_version=kubernetes_version,
        node_count=node_count,
        network=kubeadm.NetworkOption(cni_name=cni, pod_cidr=pod_cidr),
        instance_class=instance_class,
        vxnet_id=vxnet,
        zone=zone or config.zone or '',
        use_exist_key=use_exist_key,
        scp_kubeconfig_to_local=scp_kubeconfig,
        local_kubeconfig_path=local_kubeconfig_path)
    try:
        orchestrator = _build_orchestrator(config, request.zone)
        endpoint = orchestrator.create_cluster(request)
    except exceptions.YKubeError as e:
        _report_failure(e)
        sys.exit(1)
    green = colorama.Fore.GREEN
    reset = colorama.Style.RESET_ALL
    click.echo(f'{green}Cluster {endpoint.cluster_name} is up. Master: '
               f'{endpoint.master_id} ({endpoint.master_ip}){reset}')
    if endpoint.kubeconfig_path:
        click.echo(f'export KUBECONFIG={endpoint.kubeconfig_path}')


@cli.command()
@click.option('--name', '-n', required=True, help='Name of the cluster.')
@click.option('--zone',
              default=None,
              help='Zone of the cluster. Defaults to the config.')
@click.option('--yes',
              '-y',
              is_flag=True,
              default=False,
              help='Skip confirmation prompt.')
@click.pass_obj
def delete(config, name, zone, yes):
    """Terminate every instance of a cluster and remove its tag."""
    if not yes:
        click.confirm(f'Deleting cluster {name!r}. Proceed?',
                      default=True,
                      abort=True,
                      show_default=True)
    try:
        orchestrator = _build_orchestrator(config, zone)
        instance_ids = orchestrator.delete_cluster(name)
    except exceptions.YKubeError as e:
        _report_failure(e)
        sys.exit(1)
    click.echo(f'Cluster {name} deleted, terminated instances: '
               f'{", ".join(instance_ids) or "none"}')


@cli.command()
@click.pass_obj
def presets(config):
    """Show the supported Kubernetes versions and their images."""
    try:
        catalog = _load_catalog(config)
    except exceptions.YKubeError as e:
        _report_failure(e)
        sys.exit(1)
    click.echo(
        common_utils.dump_yaml_str({
            version: {
                'master_image_id': p.master_image_id,
                'node_image_id': p.node_image_id,
                'master': f'{p.master_cpu} cpu, {p.master_memory} MiB',
                'node': f'{p.node_cpu} cpu, {p.node_memory} MiB',
                'cni_manifest_path': p.cni_manifest_path,
            } for version, p in catalog.items()
        }),
        nl=False)


def main():
    return cli()


if __name__ == '__main__':
    main()
