from .compiler import CompiledStack, FunctionSpec, compile_stack
from .config import (
    AuthenticationConfig,
    FileProxyRoute,
    FileRoute,
    FolderRoute,
    FunctionProxyRoute,
    FunctionRoute,
    MonitoringConfig,
    RequestParameter,
    StackConfig,
    ThrottlingConfig,
    parse_route,
)
from .exceptions import CompileError, StackCompileError

__all__ = [
    "AuthenticationConfig",
    "CompileError",
    "CompiledStack",
    "FileProxyRoute",
    "FileRoute",
    "FolderRoute",
    "FunctionProxyRoute",
    "FunctionRoute",
    "FunctionSpec",
    "MonitoringConfig",
    "RequestParameter",
    "StackCompileError",
    "StackConfig",
    "ThrottlingConfig",
    "compile_stack",
    "parse_route",
]
