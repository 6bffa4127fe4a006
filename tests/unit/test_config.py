"""Unit tests for cluster spec resolution."""

import pytest

from eks_manager.config import load_config_file, parse_tags, resolve, resolve_target
from eks_manager.exceptions import ConfigurationError, ValidationError


def test_defaults():
    """Test that an empty environment resolves to the built-in defaults."""
    spec = resolve({})

    assert spec.name == "cluster-devops"
    assert spec.region == "us-east-1"
    assert spec.version == "1.33"
    assert spec.vpc_cidr == "10.0.0.0/16"
    ng = spec.node_groups[0]
    assert (ng.name, ng.instance_type) == ("workers", "t3a.medium")
    assert (ng.min_size, ng.desired_capacity, ng.max_size) == (1, 2, 3)


def test_environment_overrides_defaults():
    env = {
        "CLUSTER_NAME": "demo",
        "REGION": "eu-west-1",
        "NODE_TYPE": "t3.large",
        "MIN_NODES": "2",
        "MAX_NODES": "5",
        "DESIRED_NODES": "3",
        "SSH_KEY_NAME": "ops-key",
        "ADDITIONAL_TAGS": "Owner=ops, CostCenter=42",
    }
    spec = resolve(env)

    assert spec.name == "demo"
    assert spec.region == "eu-west-1"
    assert spec.node_groups[0].instance_type == "t3.large"
    assert spec.node_groups[0].desired_capacity == 3
    assert spec.ssh_key_name == "ops-key"
    assert spec.tags == {"Owner": "ops", "CostCenter": "42"}


def test_config_file_overrides_environment(tmp_path):
    """Test that file values win over environment values."""
    config_file = tmp_path / "cluster.yaml"
    config_file.write_text(
        "name: from-file\n"
        "version: 1.32\n"
        "node_groups:\n"
        "  - name: system\n"
        "    desired_capacity: 1\n"
        "  - name: batch\n"
        "    instance_type: m5.large\n"
        "    min_size: 0\n"
        "    desired_capacity: 0\n"
        "    max_size: 4\n"
    )
    spec = resolve({"CLUSTER_NAME": "from-env", "NODE_TYPE": "t3.small"}, config_file)

    assert spec.name == "from-file"
    assert spec.version == "1.32"
    system, batch = spec.node_groups
    assert system.instance_type == "t3.small"
    assert (system.min_size, system.desired_capacity, system.max_size) == (1, 1, 3)
    assert batch.instance_type == "m5.large"
    assert (batch.min_size, batch.desired_capacity, batch.max_size) == (0, 0, 4)


def test_overrides_win_over_file(tmp_path):
    config_file = tmp_path / "cluster.yaml"
    config_file.write_text("name: from-file\nregion: eu-west-1\n")

    spec = resolve({}, config_file, overrides={"name": "from-flag"})

    assert spec.name == "from-flag"
    assert spec.region == "eu-west-1"


def test_all_violations_reported():
    """Test that every violated rule is listed, not just the first."""
    with pytest.raises(ValidationError) as exc_info:
        resolve({"CLUSTER_NAME": "", "MIN_NODES": "5", "MAX_NODES": "2", "DESIRED_NODES": "9"})

    violations = exc_info.value.violations
    assert "CLUSTER_NAME is empty" in violations
    assert "MIN_NODES>MAX_NODES (5>2)" in violations
    assert "DESIRED_NODES outside [MIN_NODES,MAX_NODES] (9)" in violations


def test_non_integer_sizes_rejected():
    with pytest.raises(ValidationError) as exc_info:
        resolve({"MAX_NODES": "three"})

    assert any("MAX_NODES is not an integer" in v for v in exc_info.value.violations)


def test_negative_sizes_rejected():
    with pytest.raises(ValidationError) as exc_info:
        resolve({"MIN_NODES": "-1"})

    assert "MIN_NODES must not be negative" in exc_info.value.violations


def test_violations_name_the_node_group(tmp_path):
    """Test that multi-group violations say which group is wrong."""
    config_file = tmp_path / "cluster.yaml"
    config_file.write_text(
        "node_groups:\n  - name: ok\n  - name: broken\n    min_size: 4\n    max_size: 2\n"
    )

    with pytest.raises(ValidationError) as exc_info:
        resolve({}, config_file)

    assert "node group 'broken': MIN_NODES>MAX_NODES (4>2)" in exc_info.value.violations


def test_model_errors_become_violations():
    """Test that field-level validation errors are reported as violations."""
    with pytest.raises(ValidationError) as exc_info:
        resolve({"REGION": "not a region", "VPC_CIDR": "10.0.0.0/99"})

    fields = [v.split(":")[0] for v in exc_info.value.violations]
    assert "region" in fields
    assert "vpc_cidr" in fields


def test_duplicate_node_groups_rejected(tmp_path):
    config_file = tmp_path / "cluster.yaml"
    config_file.write_text("node_groups:\n  - name: workers\n  - name: workers\n")

    with pytest.raises(ValidationError) as exc_info:
        resolve({}, config_file)

    assert "duplicate node group names" in exc_info.value.message


def test_parse_tags():
    assert parse_tags(None) == {}
    assert parse_tags("a=1,b=x=y,") == {"a": "1", "b": "x=y"}

    with pytest.raises(ConfigurationError) as exc_info:
        parse_tags("a=1,broken")
    assert "broken" in exc_info.value.message


def test_load_missing_config_file(tmp_path):
    with pytest.raises(ConfigurationError) as exc_info:
        load_config_file(tmp_path / "missing.yaml")

    assert "not found" in exc_info.value.message


def test_load_invalid_config_file(tmp_path):
    bad = tmp_path / "bad.yaml"
    bad.write_text("name: [unclosed\n")
    with pytest.raises(ConfigurationError):
        load_config_file(bad)

    listing = tmp_path / "list.yaml"
    listing.write_text("- a\n- b\n")
    with pytest.raises(ConfigurationError) as exc_info:
        load_config_file(listing)
    assert "mapping" in exc_info.value.message


def test_load_empty_config_file(tmp_path):
    empty = tmp_path / "empty.yaml"
    empty.write_text("")

    assert load_config_file(empty) == {}


def test_field_and_size_violations_reported_together():
    """Test that name problems are listed alongside size problems."""
    with pytest.raises(ValidationError) as exc_info:
        resolve({"CLUSTER_NAME": "1bad", "MIN_NODES": "3", "MAX_NODES": "1"})

    violations = exc_info.value.violations
    assert "MIN_NODES>MAX_NODES (3>1)" in violations
    assert "DESIRED_NODES outside [MIN_NODES,MAX_NODES] (2)" in violations
    assert any(v.startswith("name:") and "must start with a letter" in v for v in violations)
    assert len(violations) == 3


def test_empty_name_reported_once():
    with pytest.raises(ValidationError) as exc_info:
        resolve({"CLUSTER_NAME": ""})

    assert exc_info.value.violations == ["CLUSTER_NAME is empty"]


def test_fractional_and_boolean_sizes_rejected(tmp_path):
    """Test that YAML floats and booleans are not truncated into node counts."""
    config_file = tmp_path / "cluster.yaml"
    config_file.write_text(
        "node_groups:\n  - name: workers\n    min_size: 1.9\n    desired_capacity: 2.7\n    max_size: true\n"
    )

    with pytest.raises(ValidationError) as exc_info:
        resolve({}, config_file)

    assert exc_info.value.violations == [
        "MIN_NODES is not an integer: 1.9",
        "MAX_NODES is not an integer: True",
        "DESIRED_NODES is not an integer: 2.7",
    ]


def test_resolve_target_ignores_node_group_settings(tmp_path):
    """Test that name and region resolve even when sizing settings are broken."""
    config_file = tmp_path / "cluster.yaml"
    config_file.write_text("region: eu-west-1\nnode_groups: broken\n")
    env = {"CLUSTER_NAME": "from-env", "MIN_NODES": "lots", "NODE_TYPE": "???"}

    assert resolve_target(env, config_file) == ("from-env", "eu-west-1")
    assert resolve_target(env, config_file, overrides={"name": "from-flag"}) == ("from-flag", "eu-west-1")
    assert resolve_target({}) == ("cluster-devops", "us-east-1")

    with pytest.raises(ValidationError) as exc_info:
        resolve_target({"CLUSTER_NAME": " "})
    assert exc_info.value.violations == ["CLUSTER_NAME is empty"]
