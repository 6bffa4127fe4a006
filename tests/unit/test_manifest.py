"""Unit tests for eksctl ClusterConfig rendering."""

from ruamel.yaml import YAML

from eks_manager.manifest import dump_cluster_config, render_cluster_config, transient_cluster_config
from eks_manager.models.addon import AddonSpec
from eks_manager.models.cluster import ClusterSpec
from eks_manager.models.nodegroup import NodeGroupSpec


def test_render_default_spec():
    """Test that the rendered document carries the cluster and node settings."""
    spec = ClusterSpec(name="demo", region="us-west-2")
    doc = render_cluster_config(spec)

    assert doc["apiVersion"] == "eksctl.io/v1alpha5"
    assert doc["kind"] == "ClusterConfig"
    assert doc["metadata"]["name"] == "demo"
    assert doc["metadata"]["region"] == "us-west-2"
    assert doc["vpc"]["cidr"] == "10.0.0.0/16"
    assert doc["iam"]["withOIDC"] is True

    ng = doc["managedNodeGroups"][0]
    assert ng["instanceType"] == "t3a.medium"
    assert (ng["minSize"], ng["desiredCapacity"], ng["maxSize"]) == (1, 2, 3)
    assert "ssh" not in ng

    assert [a["name"] for a in doc["addons"]] == ["vpc-cni", "coredns", "kube-proxy", "aws-ebs-csi-driver"]
    assert doc["cloudWatch"]["clusterLogging"]["logRetentionInDays"] == 7


def test_render_ssh_and_tags():
    spec = ClusterSpec(
        name="demo",
        region="us-east-1",
        ssh_key_name="ops-key",
        tags={"Owner": "ops"},
        node_groups=(NodeGroupSpec(name="a"), NodeGroupSpec(name="b", instance_type="m5.large")),
    )
    doc = render_cluster_config(spec)

    assert doc["metadata"]["tags"] == {"Owner": "ops"}
    for ng in doc["managedNodeGroups"]:
        assert ng["ssh"] == {"allow": True, "publicKeyName": "ops-key"}
        assert ng["tags"] == {"Owner": "ops"}
    assert [ng["name"] for ng in doc["managedNodeGroups"]] == ["a", "b"]


def test_only_managed_addons_rendered():
    """Test that chart and manifest add-ons are left out of the eksctl document."""
    spec = ClusterSpec(
        name="demo",
        region="us-east-1",
        addons=(
            AddonSpec(name="vpc-cni"),
            AddonSpec(name="metrics-server", source="manifest", manifest_url="https://x/components.yaml"),
        ),
    )

    assert [a["name"] for a in render_cluster_config(spec)["addons"]] == ["vpc-cni"]


def test_dump_is_valid_yaml():
    text = dump_cluster_config(ClusterSpec(name="demo", region="us-east-1"))

    data = YAML(typ="safe").load(text)
    assert data["kind"] == "ClusterConfig"
    assert data["metadata"]["version"] == "1.33"
    assert "# Network" in text


def test_transient_config_removed_on_exit():
    """Test that the temporary config file does not outlive the context."""
    spec = ClusterSpec(name="demo", region="us-east-1")

    with transient_cluster_config(spec) as path:
        assert path.exists()
        assert "kind: ClusterConfig" in path.read_text()

    assert not path.exists()


def test_transient_config_removed_on_error():
    spec = ClusterSpec(name="demo", region="us-east-1")

    try:
        with transient_cluster_config(spec) as path:
            raise RuntimeError("eksctl crashed")
    except RuntimeError:
        pass

    assert not path.exists()
