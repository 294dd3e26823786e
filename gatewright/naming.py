import re
from hashlib import sha256

from gatewright.constants import MAX_FUNCTION_NAME_LENGTH
from gatewright.exceptions import NameTooLongError

HASH_LENGTH = 7


def normalize_name(identifier: str) -> str:
    """Lower-case the identifier and collapse every run of other characters to one hyphen.

    Example: 'Foo.Bar_baz' -> 'foo-bar-baz'
    """
    return re.sub(r"[^a-z0-9]+", "-", identifier.lower()).strip("-")


def short_hash(*parts: str) -> str:
    return sha256("".join(parts).encode()).hexdigest()[:HASH_LENGTH]


def build_function_name(http_method: str, identifier: str, domain_name: str) -> str:
    """Build the unique Lambda function name for a route.

    Example: POST-foo-bar-baz-1234567

    Raises:
        NameTooLongError: If the name exceeds the Lambda function name limit.
    """
    name = f"{http_method}-{normalize_name(identifier)}-{short_hash(identifier, domain_name)}"
    if len(name) > MAX_FUNCTION_NAME_LENGTH:
        raise NameTooLongError(name, MAX_FUNCTION_NAME_LENGTH)
    return name


def stack_name(domain_name: str) -> str:
    # Stack names must match /^[A-Za-z][A-Za-z0-9-]*$/
    return f"gatewright-{normalize_name(domain_name)}"


def rest_api_name(domain_name: str) -> str:
    return normalize_name(domain_name)


def authorizer_function_name(domain_name: str) -> str:
    return f"gatewright-request-authorizer-{short_hash(domain_name)}"


def access_log_group_name(domain_name: str) -> str:
    return f"/aws/apigateway/accessLogs/{domain_name}"


def path_resource_name(path: str) -> str:
    """Pulumi resource name part of a gateway path, unique per path.

    Example: '/users/{proxy+}' -> 'users-proxy-<hash>', '/' -> 'root-<hash>'
    """
    return f"{normalize_name(path) or 'root'}-{short_hash(path)}"
