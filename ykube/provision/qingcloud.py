"""QingCloud implementation of the provisioning services."""
import time
from typing import Any, Dict, List, Optional, Tuple

from ykube import exceptions
from ykube import ykube_config
from ykube import ykube_logging
from ykube.adaptors import qingcloud
from ykube.provision import common
from ykube.provision import interfaces

logger = ykube_logging.init_logger(__name__)

_STATUS_RUNNING = 'running'
_STATUS_BAD = ('ceased', 'terminated', 'suspended')
_POLL_INTERVAL = 5
_INSTANCE_READY_TIMEOUT = 600
_RESOURCE_TYPE_INSTANCE = 'instance'


class QingCloudAPIError(Exception):
    """A QingCloud API call returned a non-zero ret_code."""

    def __init__(self, action: str, response: Dict[str, Any]) -> None:
        self.ret_code = response.get('ret_code')
        super().__init__(f'{action} failed with ret_code {self.ret_code}: '
                         f'{response.get("message", "")}')


def _check(action: str, response: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if response is None:
        raise QingCloudAPIError(action, {'message': 'no response'})
    if response.get('ret_code', 0) != 0:
        raise QingCloudAPIError(action, response)
    return response


def _private_ip(instance: Dict[str, Any]) -> str:
    for vxnet in instance.get('vxnets') or []:
        if vxnet.get('private_ip'):
            return vxnet['private_ip']
    return ''


class QingCloudInstanceService(interfaces.InstanceService):

    def __init__(self,
                 conn,
                 poll_interval: float = _POLL_INTERVAL,
                 ready_timeout: float = _INSTANCE_READY_TIMEOUT) -> None:
        self._conn = conn
        self._poll_interval = poll_interval
        self._ready_timeout = ready_timeout

    def create_instances(
            self, option: common.CreateInstancesOption) -> List[common.Instance]:
        if option.count == 0:
            return []
        response = _check(
            'RunInstances',
            self._conn.run_instances(
                image_id=option.image_id,
                cpu=option.cpu,
                memory=option.memory,
                count=option.count,
                instance_name=common.instance_name(option.name, option.role),
                vxnets=[option.vxnet_id],
                login_mode='keypair',
                login_keypair=option.ssh_key_id,
                instance_class=option.instance_class))
        instance_ids = response['instances']
        logger.debug(f'Instances {instance_ids} requested for role '
                     f'{option.role}, job {response.get("job_id")}')
        ips = self._wait_until_running(instance_ids)
        return [
            common.Instance(id=instance_id,
                            role=option.role,
                            ip_address=ips[instance_id])
            for instance_id in instance_ids
        ]

    def _wait_until_running(self, instance_ids: List[str]) -> Dict[str, str]:
        deadline = time.time() + self._ready_timeout
        while True:
            ready, ips = self._poll(instance_ids)
            if ready:
                return ips
            if time.time() > deadline:
                raise TimeoutError(
                    f'Instances {instance_ids} are not running after '
                    f'{self._ready_timeout} seconds')
            time.sleep(self._poll_interval)

    def _poll(self, instance_ids: List[str]) -> Tuple[bool, Dict[str, str]]:
        response = _check(
            'DescribeInstances',
            self._conn.describe_instances(instances=instance_ids, verbose=1))
        ips = {}
        ready = True
        for instance in response.get('instance_set', []):
            status = instance.get('status')
            if status in _STATUS_BAD:
                raise QingCloudAPIError(
                    'DescribeInstances', {
                        'message': f'instance {instance["instance_id"]} '
                                   f'is {status}'
                    })
            ip = _private_ip(instance)
            if status != _STATUS_RUNNING or not ip:
                ready = False
            ips[instance['instance_id']] = ip
        return ready and len(ips) == len(instance_ids), ips

    def terminate_instances(self, instance_ids: List[str]) -> None:
        _check('TerminateInstances',
               self._conn.terminate_instances(instances=instance_ids))


class QingCloudTagService(interfaces.TagService):

    def __init__(self, conn) -> None:
        self._conn = conn

    def get_tag_by_name(self, name: str) -> Optional[common.Tag]:
        response = _check('DescribeTags',
                          self._conn.describe_tags(search_word=name))
        # search_word is a fuzzy match.
        for tag in response.get('tag_set', []):
            if tag.get('tag_name') == name:
                return common.Tag(tag_id=tag['tag_id'], name=name)
        return None

    def create_tag(self, name: str) -> str:
        response = _check('CreateTag', self._conn.create_tag(tag_name=name))
        return response['tag_id']

    def tag_instances(self, tag_id: str, instance_ids: List[str]) -> None:
        pairs = [{
            'tag_id': tag_id,
            'resource_type': _RESOURCE_TYPE_INSTANCE,
            'resource_id': instance_id,
        } for instance_id in instance_ids]
        _check('AttachTags', self._conn.attach_tags(resource_tag_pairs=pairs))

    def get_tagged_instances(self, tag_id: str) -> List[str]:
        response = _check('DescribeInstances',
                          self._conn.describe_instances(tags=[tag_id]))
        return [
            instance['instance_id']
            for instance in response.get('instance_set', [])
            if instance.get('status') not in ('ceased', 'terminated')
        ]

    def delete_tag(self, tag_id: str) -> None:
        _check('DeleteTags', self._conn.delete_tags(tags=[tag_id]))


class QingCloudKeyPairService(interfaces.KeyPairService):

    def __init__(self, conn) -> None:
        self._conn = conn

    def get_key_pair_by_name(self, name: str) -> str:
        response = _check('DescribeKeyPairs',
                          self._conn.describe_key_pairs(search_word=name))
        for key_pair in response.get('keypair_set', []):
            if key_pair.get('keypair_name') == name:
                return key_pair['keypair_id']
        return ''

    def create_ssh_key(self, name: str, public_key: str) -> str:
        response = _check(
            'CreateKeyPair',
            self._conn.create_keypair(keypair_name=name,
                                      mode='user',
                                      public_key=public_key.strip()))
        return response['keypair_id']


def make_services(
    config: ykube_config.Config,
    zone: Optional[str] = None
) -> Tuple[QingCloudInstanceService, QingCloudTagService,
           QingCloudKeyPairService]:
    """Connects to QingCloud with the access key from the user config.

    Raises:
        InvalidInputError: if no access key or zone is configured.
    """
    zone = zone or config.zone
    access_key_id = config.get_nested(('qingcloud', 'access_key_id'), None)
    secret_access_key = config.get_nested(('qingcloud', 'secret_access_key'),
                                          None)
    if not zone:
        raise exceptions.InvalidInputError(
            'No zone given. Pass --zone or set qingcloud.zone in '
            f'{config.path}')
    if not access_key_id or not secret_access_key:
        raise exceptions.InvalidInputError(
            'QingCloud access key is not configured. Set '
            'qingcloud.access_key_id and qingcloud.secret_access_key in '
            f'{config.path}')
    logger.info(f'Init qingcloud service in zone {zone}')
    conn = qingcloud.connect(zone, access_key_id, secret_access_key)
    return (QingCloudInstanceService(conn), QingCloudTagService(conn),
            QingCloudKeyPairService(conn))
