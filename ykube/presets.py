"""Images and sizing for every supported Kubernetes version."""
import dataclasses
import types
from typing import Any, Dict, Iterator, Mapping

from ykube import exceptions


@dataclasses.dataclass(frozen=True)
class Preset:
    """Image and sizing metadata for one Kubernetes version."""
    version_tag: str
    master_image_id: str
    node_image_id: str
    master_cpu: int
    master_memory: int
    node_cpu: int
    node_memory: int
    # Directory on the master holding one sub-directory of manifests per CNI.
    cni_manifest_path: str


_BUILTIN_PRESETS = (
    Preset(version_tag='1.13.1',
           master_image_id='img-ybttnmjg',
           node_image_id='img-rfubqmqn',
           master_cpu=4,
           master_memory=4096,
           node_cpu=4,
           node_memory=4096,
           cni_manifest_path='/root/CNI'),
    Preset(version_tag='1.15.2',
           master_image_id='img-79giiut8',
           node_image_id='img-kp1kue0l',
           master_cpu=4,
           master_memory=4096,
           node_cpu=4,
           node_memory=4096,
           cni_manifest_path='/root/CNI'),
)


class PresetCatalog(Mapping[str, Preset]):
    """Read-only mapping from an exact version string to its Preset.

    The catalog is built once at start-up and handed to the orchestrator;
    nothing looks presets up from module state.
    """

    def __init__(self, presets: Mapping[str, Preset]) -> None:
        self._presets = types.MappingProxyType(dict(presets))

    def __getitem__(self, version: str) -> Preset:
        return self._presets[version]

    def __iter__(self) -> Iterator[str]:
        return iter(self._presets)

    def __len__(self) -> int:
        return len(self._presets)

    def get_preset(self, version: str) -> Preset:
        """Returns the preset for `version`.

        Raises:
            UnsupportedVersionError: if the version is not in the catalog.
        """
        try:
            return self._presets[version]
        except KeyError:
            raise exceptions.UnsupportedVersionError(version) from None

    def versions(self):
        return sorted(self._presets)

    def with_overrides(
            self, overrides: Mapping[str, Mapping[str, Any]]) -> 'PresetCatalog':
        """Returns a new catalog with entries added or replaced.

        `overrides` maps a version to preset fields, as found under the
        `presets` key of the user config. Fields that are omitted keep the
        value of the existing preset for that version, if there is one.
        """
        presets: Dict[str, Preset] = dict(self._presets)
        for version, fields in overrides.items():
            version = str(version)
            fields = dict(fields)
            fields.setdefault('version_tag', version)
            base = presets.get(version)
            try:
                if base is not None:
                    presets[version] = dataclasses.replace(base, **fields)
                else:
                    presets[version] = Preset(**fields)
            except TypeError as e:
                raise exceptions.InvalidInputError(
                    f'Invalid preset for version {version}: {e}') from e
        return PresetCatalog(presets)


def default_catalog() -> PresetCatalog:
    return PresetCatalog({p.version_tag: p for p in _BUILTIN_PRESETS})
