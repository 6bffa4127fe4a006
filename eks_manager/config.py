"""Resolution of the cluster definition from defaults, environment and file.

Precedence: command-line overrides > config file > environment variables >
built-in defaults.
"""

from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import ValidationError as PydanticValidationError

from eks_manager.exceptions import ConfigurationError, ValidationError
from eks_manager.logging_config import get_logger
from eks_manager.models.cluster import ClusterSpec

logger = get_logger(__name__)

DEFAULTS = {
    "CLUSTER_NAME": "cluster-devops",
    "REGION": "us-east-1",
    "KUBERNETES_VERSION": "1.33",
    "NODE_GROUP_NAME": "workers",
    "NODE_TYPE": "t3a.medium",
    "MIN_NODES": "1",
    "MAX_NODES": "3",
    "DESIRED_NODES": "2",
    "VPC_CIDR": "10.0.0.0/16",
}

# Node group file keys and the environment variable each one overrides
NODE_GROUP_KEYS = {
    "min_size": "MIN_NODES",
    "max_size": "MAX_NODES",
    "desired_capacity": "DESIRED_NODES",
}


def parse_tags(value: str | None) -> dict[str, str]:
    """Parse ``key1=value1,key2=value2`` into a dict."""
    tags = {}
    if not value:
        return tags
    for pair in value.split(","):
        pair = pair.strip()
        if not pair:
            continue
        if "=" not in pair:
            raise ConfigurationError(
                f"Invalid tag format: '{pair}'", "Expected ADDITIONAL_TAGS like 'key1=value1,key2=value2'"
            )
        key, val = pair.split("=", 1)
        tags[key.strip()] = val.strip()
    return tags


def load_config_file(path: str | Path) -> dict:
    """Load a YAML cluster configuration file."""
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(
            f"Config file not found: {path}",
            f"Expected location: {path.absolute()}",
        )
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse config file {path}", str(e))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {path} must contain a mapping at the top level",
            "See the 'Configuration' section of the README for the format",
        )
    return data


def _as_int(value, label: str, violations: list[str]) -> int | None:
    # YAML floats and booleans are not node counts
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    violations.append(f"{label} is not an integer: {value!r}")
    return None


def _check_sizes(group: dict, prefix: str, violations: list[str]) -> dict:
    """Validate one group's sizes and return it ready for the model.

    A group with size violations gets placeholder sizes so that its other
    fields are still checked by the model without repeating those violations.
    """
    found = len(violations)
    sizes = {}
    for key, label in NODE_GROUP_KEYS.items():
        sizes[label] = _as_int(group.get(key), f"{prefix}{label}", violations)
    low, high, desired = sizes["MIN_NODES"], sizes["MAX_NODES"], sizes["DESIRED_NODES"]

    for label, value in sizes.items():
        if value is not None and value < 0:
            violations.append(f"{prefix}{label} must not be negative")
    if low is not None and high is not None and low > high:
        violations.append(f"{prefix}MIN_NODES>MAX_NODES ({low}>{high})")
    if None not in (low, high, desired) and not low <= desired <= high:
        violations.append(f"{prefix}DESIRED_NODES outside [MIN_NODES,MAX_NODES] ({desired})")

    if len(violations) > found:
        return {**group, **{key: 0 for key in NODE_GROUP_KEYS}}
    return {**group, **{key: sizes[label] for key, label in NODE_GROUP_KEYS.items()}}


def _model_violations(error: PydanticValidationError, reported: set[tuple]) -> list[str]:
    problems = []
    for item in error.errors():
        if tuple(item["loc"][:1]) in reported:
            continue
        field = ".".join(str(x) for x in item["loc"])
        problems.append(f"{field}: {item['msg']}")
    return problems


def _merged_settings(env: Mapping[str, str]) -> dict[str, str]:
    settings = dict(DEFAULTS)
    for key in (*DEFAULTS, "SSH_KEY_NAME", "ADDITIONAL_TAGS"):
        if key in env and env[key] is not None:
            settings[key] = env[key]
    return settings


def resolve_target(
    env: Mapping[str, str],
    config_file: str | Path | None = None,
    overrides: Mapping[str, object] | None = None,
) -> tuple[str, str]:
    """Resolve only the cluster name and region, with the same precedence as ``resolve``.

    Commands that act on an existing cluster need nothing else, so node group
    settings are neither read nor validated.

    Raises:
        ValidationError: If the name or region is empty.
        ConfigurationError: If the config file cannot be read.
    """
    settings = _merged_settings(env)
    file_data = load_config_file(config_file) if config_file else {}
    target = {"name": settings["CLUSTER_NAME"], "region": settings["REGION"]}
    for key in target:
        if key in file_data:
            target[key] = file_data[key]
        if overrides and key in overrides:
            target[key] = overrides[key]

    name = str(target["name"] or "").strip()
    region = str(target["region"] or "").strip()
    violations = []
    if not name:
        violations.append("CLUSTER_NAME is empty")
    if not region:
        violations.append("REGION is empty")
    if violations:
        raise ValidationError(violations)
    return name, region


def resolve(
    env: Mapping[str, str],
    config_file: str | Path | None = None,
    overrides: Mapping[str, object] | None = None,
) -> ClusterSpec:
    """Build a validated ClusterSpec.

    Args:
        env: Environment-style mapping (usually ``os.environ``)
        config_file: Optional YAML file whose values win over the environment
        overrides: Top-level fields (e.g. ``name``, ``region``) that win over everything

    Returns:
        An immutable ClusterSpec

    Raises:
        ValidationError: Listing every violated rule.
        ConfigurationError: If the config file cannot be read.
    """
    settings = _merged_settings(env)
    file_data = load_config_file(config_file) if config_file else {}
    logger.debug(f"Resolving cluster spec (config file: {config_file or 'none'})")

    base_group = {
        "name": settings["NODE_GROUP_NAME"],
        "instance_type": settings["NODE_TYPE"],
        "min_size": settings["MIN_NODES"],
        "max_size": settings["MAX_NODES"],
        "desired_capacity": settings["DESIRED_NODES"],
    }

    data = {
        "name": settings["CLUSTER_NAME"],
        "region": settings["REGION"],
        "version": str(settings["KUBERNETES_VERSION"]),
        "vpc_cidr": settings["VPC_CIDR"],
        "tags": parse_tags(settings.get("ADDITIONAL_TAGS")),
    }
    if settings.get("SSH_KEY_NAME"):
        data["ssh_key_name"] = settings["SSH_KEY_NAME"]

    file_groups = file_data.pop("node_groups", None)
    for key, value in file_data.items():
        data[key] = str(value) if key == "version" else value
    data.update(overrides or {})

    violations = []
    # Top-level fields already reported here are not reported again by the model
    reported = set()
    if not str(data.get("name") or "").strip():
        violations.append("CLUSTER_NAME is empty")
        reported.add(("name",))
    if not str(data.get("region") or "").strip():
        violations.append("REGION is empty")
        reported.add(("region",))

    if file_groups is None:
        groups = [dict(base_group)]
    elif isinstance(file_groups, list):
        groups = [{**base_group, **(g or {})} for g in file_groups]
    else:
        violations.append("node_groups must be a list")
        groups = []
    if not groups:
        if isinstance(file_groups, list):
            violations.append("at least one node group is required")
        reported.add(("node_groups",))

    checked = []
    for group in groups:
        prefix = f"node group '{group.get('name')}': " if len(groups) > 1 else ""
        checked.append(_check_sizes(group, prefix, violations))
    data["node_groups"] = checked

    try:
        spec = ClusterSpec.model_validate(data)
    except PydanticValidationError as e:
        violations.extend(_model_violations(e, reported))
    if violations:
        logger.error(f"Cluster configuration invalid: {violations}")
        raise ValidationError(violations)

    logger.info(f"Resolved cluster spec for {spec.name} in {spec.region}")
    return spec
