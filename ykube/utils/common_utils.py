"""Utils shared between all of ykube."""
import os
from typing import Any, Dict

import yaml


def read_yaml(path: str) -> Dict[str, Any]:
    with open(os.path.expanduser(path), 'r') as f:
        config = yaml.safe_load(f)
    return config


def dump_yaml_str(config: Any) -> str:
    # https://github.com/yaml/pyyaml/issues/127
    class LineBreakDumper(yaml.SafeDumper):

        def write_line_break(self, data=None):
            super().write_line_break(data)
            if len(self.indents) == 1:
                super().write_line_break()

    return yaml.dump(config,
                     Dumper=LineBreakDumper,
                     sort_keys=False,
                     default_flow_style=False)


def format_exception(e: BaseException) -> str:
    """Returns `ClassName: message` for an exception."""
    return f'{type(e).__name__}: {e}'
