"""Property-based tests for cluster spec resolution and node group sizing."""

import pytest
from hypothesis import assume, given
from hypothesis import strategies as st
from pydantic import ValidationError as PydanticValidationError

from eks_manager.config import resolve
from eks_manager.exceptions import ValidationError
from eks_manager.manifest import render_cluster_config
from eks_manager.models.nodegroup import NodeGroupSpec

sizes = st.integers(min_value=0, max_value=100)


@st.composite
def valid_sizes(draw):
    """Generate (min, desired, max) with min <= desired <= max."""
    low = draw(sizes)
    high = draw(st.integers(min_value=low, max_value=low + 50))
    desired = draw(st.integers(min_value=low, max_value=high))
    return low, desired, high


@st.composite
def cluster_names(draw):
    first = draw(st.sampled_from("abcdefghijklmnopqrstuvwxyz"))
    rest = draw(st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789-", max_size=30))
    return first + rest


@given(valid_sizes())
def test_valid_sizes_resolve(bounds):
    """
    Any environment with MIN_NODES <= DESIRED_NODES <= MAX_NODES resolves, and
    the resulting node group carries exactly those sizes.
    """
    low, desired, high = bounds
    spec = resolve({"MIN_NODES": str(low), "DESIRED_NODES": str(desired), "MAX_NODES": str(high)})

    ng = spec.node_groups[0]
    assert ng.min_size <= ng.desired_capacity <= ng.max_size
    assert (ng.min_size, ng.desired_capacity, ng.max_size) == (low, desired, high)


@given(low=sizes, desired=sizes, high=sizes)
def test_size_violations_all_reported(low, desired, high):
    """
    Any environment violating the size ordering is rejected, and every
    violated rule appears in the error.
    """
    expected = []
    if low > high:
        expected.append(f"MIN_NODES>MAX_NODES ({low}>{high})")
    if not low <= desired <= high:
        expected.append(f"DESIRED_NODES outside [MIN_NODES,MAX_NODES] ({desired})")
    assume(expected)

    with pytest.raises(ValidationError) as exc_info:
        resolve({"MIN_NODES": str(low), "DESIRED_NODES": str(desired), "MAX_NODES": str(high)})

    assert exc_info.value.violations == expected


@given(valid_sizes(), cluster_names())
def test_rendered_node_group_matches_spec(bounds, name):
    """The eksctl document always carries the resolved name and sizes."""
    low, desired, high = bounds
    spec = resolve(
        {
            "CLUSTER_NAME": name,
            "MIN_NODES": str(low),
            "DESIRED_NODES": str(desired),
            "MAX_NODES": str(high),
        }
    )

    doc = render_cluster_config(spec)
    ng = doc["managedNodeGroups"][0]
    assert doc["metadata"]["name"] == name
    assert (ng["minSize"], ng["desiredCapacity"], ng["maxSize"]) == (low, desired, high)


@given(low=sizes, desired=sizes, high=sizes)
def test_node_group_spec_enforces_ordering(low, desired, high):
    """NodeGroupSpec accepts exactly the size triples with min <= desired <= max."""
    if low <= desired <= high:
        ng = NodeGroupSpec(min_size=low, desired_capacity=desired, max_size=high)
        assert ng.desired_capacity == desired
    else:
        with pytest.raises(PydanticValidationError):
            NodeGroupSpec(min_size=low, desired_capacity=desired, max_size=high)
