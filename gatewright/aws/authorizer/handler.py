"""Request authorizer for HTTP Basic authentication.

Deployed on its own, so it depends on the standard library only. Credentials are
read from the USERNAME and PASSWORD environment variables.

API Gateway maps an "Unauthorized" error to a 401 response that carries the
WWW-Authenticate challenge; a Deny policy would produce a 403 instead.
"""

import base64
import binascii
import hmac
import logging
import os

logger = logging.getLogger()
logger.setLevel(logging.INFO)


class UnauthorizedError(Exception):
    pass


def parse_basic_credentials(authorization: str | None) -> tuple[str, str] | None:
    """Example: 'Basic dXNlcjpwYXNz' -> ('user', 'pass')"""
    if not authorization:
        return None
    scheme, _, encoded = authorization.strip().partition(" ")
    if scheme.lower() != "basic" or not encoded:
        return None
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    username, separator, password = decoded.partition(":")
    if not separator:
        return None
    return username, password


def is_authorized(authorization: str | None, username: str, password: str) -> bool:
    credentials = parse_basic_credentials(authorization)
    if credentials is None:
        return False
    # Both comparisons always run to keep the timing independent of the username
    username_matches = hmac.compare_digest(credentials[0].encode(), username.encode())
    password_matches = hmac.compare_digest(credentials[1].encode(), password.encode())
    return username_matches and password_matches


def api_wildcard_arn(method_arn: str) -> str:
    """Allow every method of the API, the cached policy is reused across methods.

    Example: arn:aws:execute-api:eu-west-1:123:abc/prod/GET/users
        -> arn:aws:execute-api:eu-west-1:123:abc/*
    """
    return f"{method_arn.split("/", 1)[0]}/*"


def handler(event, context):
    headers = event.get("headers") or {}
    authorization = headers.get("Authorization") or headers.get("authorization")

    if not is_authorized(authorization, os.environ["USERNAME"], os.environ["PASSWORD"]):
        logger.info("Rejected request to %s", event.get("methodArn"))
        raise UnauthorizedError("Unauthorized")

    return {
        "principalId": "user",
        "policyDocument": {
            "Version": "2012-10-17",
            "Statement": [
                {
                    "Action": "execute-api:Invoke",
                    "Effect": "Allow",
                    "Resource": api_wildcard_arn(event["methodArn"]),
                }
            ],
        },
    }
