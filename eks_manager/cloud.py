"""Cloud identity and resource inventory through boto3."""

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from eks_manager.exceptions import CredentialsError, ExternalCallError
from eks_manager.logging_config import get_logger

logger = get_logger(__name__)


class CloudClient:
    """Read-only access to the AWS APIs the tool depends on."""

    def __init__(self, region: str, session: boto3.Session | None = None):
        self.region = region
        self.session = session or boto3.Session(region_name=region)

    def _client(self, service: str):
        return self.session.client(service, region_name=self.region)

    def caller_identity(self) -> dict:
        """Verify credentials with a single STS call.

        Raises:
            CredentialsError: If no usable credentials are configured.
        """
        try:
            identity = self._client("sts").get_caller_identity()
        except NoCredentialsError:
            raise CredentialsError(
                "AWS credentials are not configured",
                "Run: aws configure\nOr export AWS_ACCESS_KEY_ID / AWS_SECRET_ACCESS_KEY / AWS_PROFILE",
            )
        except (ClientError, BotoCoreError) as e:
            raise CredentialsError(
                f"AWS credentials could not be verified: {e}",
                "Check that the configured credentials are valid and not expired",
            )
        logger.debug(f"Authenticated as {identity.get('Arn')}")
        return {
            "account": identity.get("Account"),
            "arn": identity.get("Arn"),
            "user_id": identity.get("UserId"),
        }

    def _paginate(self, service: str, operation: str, key: str, **kwargs) -> list[dict]:
        try:
            paginator = self._client(service).get_paginator(operation)
            items = []
            for page in paginator.paginate(**kwargs):
                items.extend(page.get(key, []))
            return items
        except (ClientError, BotoCoreError) as e:
            logger.error(f"{service}:{operation} failed: {e}")
            raise ExternalCallError(
                f"Listing {key} in {self.region} failed",
                ExternalCallError.API_ERROR,
                output=str(e),
            )

    def describe_load_balancers(self) -> list[dict]:
        """List application/network and classic load balancers in the region."""
        balancers = []
        for lb in self._paginate("elbv2", "describe_load_balancers", "LoadBalancers"):
            balancers.append(
                {
                    "name": lb["LoadBalancerName"],
                    "id": lb.get("LoadBalancerArn", lb["LoadBalancerName"]),
                    "state": lb.get("State", {}).get("Code"),
                    "vpc_id": lb.get("VpcId"),
                }
            )
        for lb in self._paginate("elb", "describe_load_balancers", "LoadBalancerDescriptions"):
            balancers.append(
                {
                    "name": lb["LoadBalancerName"],
                    "id": lb["LoadBalancerName"],
                    "state": None,
                    "vpc_id": lb.get("VPCId"),
                }
            )
        return balancers

    def describe_security_groups(self, filters: list[dict]) -> list[dict]:
        return self._paginate(
            "ec2", "describe_security_groups", "SecurityGroups", Filters=filters
        )

    def describe_nat_gateways(self, filters: list[dict]) -> list[dict]:
        return self._paginate("ec2", "describe_nat_gateways", "NatGateways", Filter=filters)
