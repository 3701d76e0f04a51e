from __future__ import annotations


class BridgeError(RuntimeError):
    pass


class PlatformUnsupportedError(BridgeError):
    def __init__(self, system: str, machine: str) -> None:
        super().__init__(f"Unsupported platform: {system}-{machine}")
        self.system = system
        self.machine = machine


class VersionResolutionError(BridgeError):
    pass


class DownloadError(BridgeError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ExtractionError(BridgeError):
    pass


class ServerConfigError(BridgeError):
    pass


class ServerConnectionError(BridgeError):
    pass


class ToolListError(BridgeError):
    pass


class ToolTimeoutError(BridgeError):
    def __init__(self, tool_name: str, timeout: float) -> None:
        super().__init__(f"Tool '{tool_name}' timed out after {timeout:g}s")
        self.tool_name = tool_name
        self.timeout = timeout


class ToolExecutionError(BridgeError):
    pass


class CleanupError(BridgeError):
    pass
