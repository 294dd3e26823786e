import json
import logging

from pulumi import ResourceOptions
from pulumi_aws.apigateway import Account
from pulumi_aws.iam import (
    GetPolicyDocumentStatementArgs,
    GetPolicyDocumentStatementPrincipalArgs,
    Role,
    RolePolicy,
    RolePolicyAttachment,
    get_policy_document,
)
from pulumi_aws.s3 import Bucket

from gatewright.component import safe_name

logger = logging.getLogger("gatewright.aws.iam")

LAMBDA_BASIC_EXECUTION_ROLE = "arn:aws:iam::aws:policy/service-role/AWSLambdaBasicExecutionRole"
API_GATEWAY_LOGS_POLICY = (
    "arn:aws:iam::aws:policy/service-role/AmazonAPIGatewayPushToCloudWatchLogs"
)
MAX_ROLE_NAME_LENGTH = 64


def _assume_role_policy(service: str) -> str:
    return get_policy_document(
        statements=[
            GetPolicyDocumentStatementArgs(
                actions=["sts:AssumeRole"],
                principals=[
                    GetPolicyDocumentStatementPrincipalArgs(identifiers=[service], type="Service")
                ],
            )
        ]
    ).json


def _create_lambda_role(prefix: str, name: str) -> tuple[Role, RolePolicyAttachment]:
    """Create the execution role of a Lambda function with basic logging permissions."""
    role = Role(
        safe_name(prefix, name, MAX_ROLE_NAME_LENGTH, "-r"),
        assume_role_policy=_assume_role_policy("lambda.amazonaws.com"),
    )
    attachment = RolePolicyAttachment(
        f"{prefix}{name}-basic-execution-r-p-attachment",
        role=role.name,
        policy_arn=LAMBDA_BASIC_EXECUTION_ROLE,
    )
    return role, attachment


def _create_bucket_read_role(prefix: str, bucket: Bucket) -> Role:
    """Create the role API Gateway assumes to read objects of the site bucket."""
    role = Role(
        safe_name(prefix, "bucket-read", MAX_ROLE_NAME_LENGTH, "-r"),
        assume_role_policy=_assume_role_policy("apigateway.amazonaws.com"),
    )
    RolePolicy(
        f"{prefix}bucket-read-policy",
        role=role.name,
        policy=bucket.arn.apply(
            lambda arn: json.dumps(
                {
                    "Version": "2012-10-17",
                    "Statement": [
                        {
                            "Effect": "Allow",
                            "Action": ["s3:GetObject"],
                            "Resource": [f"{arn}/*"],
                        }
                    ],
                }
            )
        ),
    )
    return role


def _create_api_gateway_account(prefix: str) -> Account:
    """Give API Gateway a CloudWatch role so stages can write execution and access logs.

    The account setting is region-wide, so it is kept when the stack is destroyed.
    """
    logger.info("Creating API Gateway account CloudWatch role")
    role = Role(
        safe_name(prefix, "api-gateway-cloudwatch", MAX_ROLE_NAME_LENGTH, "-r"),
        assume_role_policy=_assume_role_policy("apigateway.amazonaws.com"),
        managed_policy_arns=[API_GATEWAY_LOGS_POLICY],
        opts=ResourceOptions(retain_on_delete=True),
    )
    return Account(
        f"{prefix}api-gateway-account",
        cloudwatch_role_arn=role.arn,
        opts=ResourceOptions(retain_on_delete=True),
    )
