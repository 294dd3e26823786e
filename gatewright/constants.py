from enum import Enum
from typing import Literal

MAX_FUNCTION_NAME_LENGTH = 64
# API Gateway's synchronous integration limit is 29 seconds, one is kept as margin
MAX_TIMEOUT_IN_SECONDS = 28
DEFAULT_MEMORY_SIZE = 128
DEFAULT_CACHE_TTL_IN_SECONDS = 300
DEFAULT_AUTHORIZER_CACHE_TTL_IN_SECONDS = 300
DEFAULT_THROTTLING_RATE_LIMIT = 10000
DEFAULT_THROTTLING_BURST_LIMIT = 5000
DEFAULT_CORS_STATUS_CODE = 204
DEFAULT_RUNTIME = "python3.12"

PROXY_NAME = "proxy"
PROXY_PATH_PARAMETER = f"method.request.path.{PROXY_NAME}"
PROXY_INTEGRATION_PARAMETER = f"integration.request.path.{PROXY_NAME}"
METHOD_RESPONSE_HEADER = "method.response.header."
GATEWAY_RESPONSE_HEADER = "gatewayresponse.header."

CORS_DEFAULT_HEADERS = (
    "Content-Type",
    "X-Amz-Date",
    "Authorization",
    "X-Api-Key",
    "X-Amz-Security-Token",
    "X-Amz-User-Agent",
)
CORS_ALL_METHODS = ("OPTIONS", "GET", "PUT", "POST", "DELETE", "PATCH", "HEAD")
CORS_ANY_METHOD = "ANY"
CORS_ALL_ORIGINS = "*"


class HTTPMethod(Enum):
    DELETE = "DELETE"
    GET = "GET"
    HEAD = "HEAD"
    PATCH = "PATCH"
    POST = "POST"
    PUT = "PUT"


HTTPMethodLiteral = Literal["DELETE", "GET", "HEAD", "PATCH", "POST", "PUT"]
RouteType = Literal["file", "file+", "folder+", "function", "function+"]
LoggingLevel = Literal["INFO", "OFF"]
