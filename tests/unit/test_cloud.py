"""Unit tests for the boto3-backed cloud client."""

from unittest.mock import MagicMock

import boto3
import pytest
from botocore.exceptions import ClientError, NoCredentialsError
from moto import mock_aws

from eks_manager.cloud import CloudClient
from eks_manager.exceptions import CredentialsError, ExternalCallError

REGION = "us-east-1"


@mock_aws
def test_caller_identity(aws_credentials):
    identity = CloudClient(REGION).caller_identity()

    assert identity["account"] == "123456789012"
    assert identity["arn"]


def test_caller_identity_without_credentials():
    """Test that missing credentials raise a credentials error with a hint."""
    session = MagicMock()
    session.client.return_value.get_caller_identity.side_effect = NoCredentialsError()

    with pytest.raises(CredentialsError) as exc_info:
        CloudClient(REGION, session=session).caller_identity()

    assert "aws configure" in exc_info.value.details


def test_caller_identity_expired_token():
    session = MagicMock()
    session.client.return_value.get_caller_identity.side_effect = ClientError(
        {"Error": {"Code": "ExpiredToken", "Message": "token expired"}}, "GetCallerIdentity"
    )

    with pytest.raises(CredentialsError) as exc_info:
        CloudClient(REGION, session=session).caller_identity()

    assert "ExpiredToken" in exc_info.value.message


def _vpc_with_subnets(ec2):
    vpc_id = ec2.create_vpc(CidrBlock="10.0.0.0/16")["Vpc"]["VpcId"]
    subnets = [
        ec2.create_subnet(VpcId=vpc_id, CidrBlock=cidr, AvailabilityZone=az)["Subnet"]["SubnetId"]
        for cidr, az in (("10.0.1.0/24", "us-east-1a"), ("10.0.2.0/24", "us-east-1b"))
    ]
    return vpc_id, subnets


@mock_aws
def test_describe_load_balancers(aws_credentials):
    """Test that application load balancers are listed with their VPC."""
    ec2 = boto3.client("ec2", region_name=REGION)
    vpc_id, subnets = _vpc_with_subnets(ec2)
    boto3.client("elbv2", region_name=REGION).create_load_balancer(Name="demo-alb", Subnets=subnets)

    balancers = CloudClient(REGION).describe_load_balancers()

    assert [lb["name"] for lb in balancers] == ["demo-alb"]
    assert balancers[0]["vpc_id"] == vpc_id
    assert balancers[0]["id"].startswith("arn:aws:elasticloadbalancing")


@mock_aws
def test_describe_security_groups(aws_credentials):
    ec2 = boto3.client("ec2", region_name=REGION)
    vpc_id, _ = _vpc_with_subnets(ec2)
    group_id = ec2.create_security_group(
        GroupName="eksctl-demo-nodes", Description="demo nodes", VpcId=vpc_id
    )["GroupId"]

    groups = CloudClient(REGION).describe_security_groups(
        [{"Name": "group-name", "Values": ["eksctl-demo-nodes"]}]
    )

    assert [g["GroupId"] for g in groups] == [group_id]


def test_api_errors_are_external_call_errors():
    session = MagicMock()
    session.client.return_value.get_paginator.return_value.paginate.side_effect = ClientError(
        {"Error": {"Code": "UnauthorizedOperation", "Message": "denied"}}, "DescribeNatGateways"
    )

    with pytest.raises(ExternalCallError) as exc_info:
        CloudClient(REGION, session=session).describe_nat_gateways([])

    assert exc_info.value.reason == ExternalCallError.API_ERROR
    assert "UnauthorizedOperation" in exc_info.value.output
