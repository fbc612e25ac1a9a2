"""Errors raised by the sidecar supervisor."""


class SpawnError(RuntimeError):
    """The sidecar process could not be started."""

    def __init__(self, command, reason: str) -> None:
        self.command = list(command)
        self.reason = reason
        super().__init__(f"Failed to spawn {self.command[0] if self.command else '<empty command>'}: {reason}")
