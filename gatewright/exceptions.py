from collections.abc import Sequence


class CompileError(Exception):
    """Base class for validation failures detected while compiling a stack."""

    def __init__(self, message: str, public_path: str | None = None):
        self.public_path = public_path
        if public_path is not None:
            message = f"Route '{public_path}': {message}"
        super().__init__(message)

    def attach_route(self, public_path: str) -> "CompileError":
        """Name the offending route unless the error already names one."""
        if self.public_path is None:
            self.public_path = public_path
            self.args = (f"Route '{public_path}': {self.args[0]}",)
        return self


class InvalidOriginsError(CompileError):
    """Raised when a CORS configuration has no allowed origin."""

    def __init__(self, public_path: str | None = None):
        self.origins: list[str] = []
        super().__init__("allowOrigins must contain at least one origin", public_path)


class MixedOriginsError(CompileError):
    """Raised when the wildcard origin is combined with specific origins."""

    def __init__(self, origins: Sequence[str], public_path: str | None = None):
        self.origins = list(origins)
        super().__init__(
            f"Invalid allowOrigins - cannot mix '*' with specific origins: {','.join(origins)}",
            public_path,
        )


class InvalidMethodsError(CompileError):
    """Raised when ANY is combined with other CORS methods."""

    def __init__(self, methods: Sequence[str], public_path: str | None = None):
        self.methods = list(methods)
        super().__init__(
            f"ANY cannot be used with any other method. Received: {','.join(methods)}",
            public_path,
        )


class ConflictingCacheOptionsError(CompileError):
    """Raised when both max_age and disable_cache are set."""

    def __init__(self, max_age: int, public_path: str | None = None):
        self.max_age = max_age
        super().__init__(
            f"The options 'max_age' ({max_age}) and 'disable_cache' are mutually exclusive",
            public_path,
        )


class NameTooLongError(CompileError):
    """Raised when a derived function name exceeds the 64 character limit."""

    def __init__(self, name: str, max_length: int, public_path: str | None = None):
        self.name = name
        self.max_length = max_length
        super().__init__(
            f"The unique name of a Lambda function must not be longer than {max_length} "
            f"characters: {name} ({len(name)} characters)",
            public_path,
        )


class TimeoutTooLargeError(CompileError):
    """Raised when a function timeout exceeds the gateway integration timeout."""

    def __init__(
        self, timeout_in_seconds: int, max_timeout_in_seconds: int, public_path: str | None = None
    ):
        self.timeout_in_seconds = timeout_in_seconds
        self.max_timeout_in_seconds = max_timeout_in_seconds
        super().__init__(
            f"The timeout of a Lambda function ({timeout_in_seconds}s) must not exceed "
            f"{max_timeout_in_seconds}s, the maximum API Gateway integration timeout of "
            "29 seconds minus a safety margin",
            public_path,
        )


class MissingAuthorizerError(CompileError):
    """Raised when a route enables authentication but the stack configures none."""

    def __init__(self, public_path: str | None = None):
        super().__init__(
            "Authentication cannot be enabled because no authentication options are configured",
            public_path,
        )


class DuplicateMethodPathError(CompileError):
    """Raised when two routes deploy the same method on the same path."""

    def __init__(self, method_path: str, public_path: str | None = None):
        self.method_path = method_path
        super().__init__(
            f"Method path '{method_path}' is already deployed by another route", public_path
        )


class DuplicateFunctionNameError(CompileError):
    """Raised when two function routes resolve to the same function name."""

    def __init__(self, name: str, public_path: str | None = None):
        self.name = name
        super().__init__(f"Function name '{name}' is already used by another route", public_path)


class StackCompileError(Exception):
    """Raised once per compile pass with every error collected from the routes."""

    def __init__(self, errors: Sequence[CompileError]):
        self.errors = list(errors)
        lines = "\n".join(f"  - {error}" for error in self.errors)
        super().__init__(f"Stack configuration has {len(self.errors)} error(s):\n{lines}")
