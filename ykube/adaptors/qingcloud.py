"""QingCloud cloud adaptors"""

# pylint: disable=import-outside-toplevel

from functools import wraps

qingcloud_iaas = None


def import_package(func):

    @wraps(func)
    def wrapper(*args, **kwargs):
        global qingcloud_iaas
        if qingcloud_iaas is None:
            try:
                import qingcloud.iaas as _qingcloud_iaas
                qingcloud_iaas = _qingcloud_iaas
            except ImportError:
                raise ImportError('Fail to import dependencies for QingCloud. '
                                  'Try pip install "ykube[qingcloud]"') from None
        return func(*args, **kwargs)

    return wrapper


@import_package
def connect(zone: str, access_key_id: str, secret_access_key: str):
    return qingcloud_iaas.connect_to_zone(zone, access_key_id,
                                          secret_access_key)
