# =========================
# Errors
# =========================


class ErlangRpcError(Exception):
    """Base class for every error reported in the failed envelope."""


class MissingArgumentsError(ErlangRpcError):
    pass


class ConfigError(ErlangRpcError, ValueError):
    pass


class TermSyntaxError(ConfigError):
    def __init__(self, message: str, text: str = "", pos: int = -1):
        if pos >= 0:
            message = f"{message} at position {pos} in {text!r}"
        super().__init__(message)
        self.text = text
        self.pos = pos


class RemoteCallError(ErlangRpcError, RuntimeError):
    pass


class CallTimeoutError(RemoteCallError):
    pass
