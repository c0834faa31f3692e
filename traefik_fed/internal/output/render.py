import json

import yaml

from traefik_fed.internal.domain.models import UnifiedConfiguration

YAML_MEDIA_TYPE = "application/x-yaml"
JSON_MEDIA_TYPE = "application/json"


def to_yaml(snapshot: UnifiedConfiguration) -> str:
    return yaml.safe_dump(snapshot.to_document(), default_flow_style=False, sort_keys=False, indent=2)


def to_json(snapshot: UnifiedConfiguration) -> str:
    return json.dumps(snapshot.to_document())


def from_yaml(text: str) -> UnifiedConfiguration:
    return UnifiedConfiguration.from_document(yaml.safe_load(text))
