"""Ports this Portboard instance is bound to."""


class ServerState:
    """Registry of self ports, written once at server start."""

    def __init__(self, dev_server_port: int = 3000, dev_mode: bool = False):
        self.dev_server_port = dev_server_port
        self.dev_mode = dev_mode
        self._server_port: int | None = None

    @property
    def server_port(self) -> int | None:
        return self._server_port

    def set_server_port(self, port: int) -> None:
        self._server_port = port

    def self_ports(self) -> set[int]:
        ports = set()
        if self._server_port is not None:
            ports.add(self._server_port)
        if self.dev_mode:
            ports.add(self.dev_server_port)
        return ports
