"""Wire protocol shared by the remsh server and client.

The transport is a single TCP stream with no length prefixes:

    server -> client   greeting (info line + welcome line), once
    client -> server   one command line per turn, no terminator
    server -> client   raw output chunks, then the literal marker

The ``exit``/``salir`` turn is answered with a farewell line and no
marker. Since the marker is the only delimiter, a command whose output
contains ``<CMD_EOF>`` ends its frame early.
"""

from __future__ import annotations

from remsh.domain.models import Command, CommandKind, PeerInfo

MARKER = b"<CMD_EOF>"
EXIT_COMMANDS = ("exit", "salir")

GREETING_TIME_FORMAT = "%d/%m/%Y %H:%M:%S"
WELCOME_MESSAGE = (
    "Conexion SSH establecida. Escriba comandos o 'salir'/'exit' para desconectar.\n"
)
FAREWELL_MESSAGE = "Desconectando. Hasta luego!\n"
EMPTY_COMMAND_MESSAGE = "Error: Comando vacío\n"
INTERNAL_ERROR_MESSAGE = "Error interno del servidor\n"


def build_greeting(peer: PeerInfo) -> bytes:
    """Connection-info line followed by the welcome line."""
    stamp = peer.connected_at.strftime(GREETING_TIME_FORMAT)
    if peer.hostname:
        info = f"{stamp} - Conexión desde {peer.hostname} ({peer.address})\n"
    else:
        info = f"{stamp} - Conexión desde IP: {peer.address}\n"
    return (info + WELCOME_MESSAGE).encode("utf-8")


def not_found_message(program: str) -> str:
    return f"Error: comando no encontrado: '{program}'\n"


def silent_command_message(command: str, returncode: int | None) -> str:
    """Notice sent in place of output for commands that printed nothing."""
    if returncode == 0:
        return f"[Info] Comando '{command}' ejecutado (sin salida)\n"
    return f"[Error] Comando '{command}' falló\n"


def clean_line(raw: bytes | str) -> str:
    """Decode a received line and strip line terminators and whitespace."""
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    return raw.strip()


def classify_command(raw: bytes | str) -> Command:
    """Trim a received line and decide how the session should treat it."""
    text = clean_line(raw)
    if not text:
        return Command(text="", kind=CommandKind.EMPTY)
    if text in EXIT_COMMANDS:
        return Command(text=text, kind=CommandKind.EXIT)
    return Command(text=text, kind=CommandKind.EXECUTE)


class MarkerScanner:
    """Finds the end-of-output marker in a stream of received chunks.

    Chunks are fed in arrival order. Bytes that are certainly payload are
    returned straight away; the last ``len(marker) - 1`` bytes are held
    back until the next chunk shows whether they begin a marker, so a
    marker split across two reads is still recognized and never shown.

    Usage::

        scanner = MarkerScanner()
        for chunk in chunks:
            payload = scanner.feed(chunk)
            display(payload)
            if scanner.found:
                break
    """

    def __init__(self, marker: bytes = MARKER) -> None:
        if not marker:
            raise ValueError("marker must not be empty")
        self._marker = marker
        self._tail = b""
        self._found = False

    @property
    def found(self) -> bool:
        return self._found

    @property
    def pending(self) -> bytes:
        """Held-back bytes not yet known to be payload."""
        return self._tail

    def feed(self, chunk: bytes) -> bytes:
        """Consume one received chunk and return the payload it releases.

        Once the marker has been seen, anything fed afterwards is ignored
        and ``b""`` is returned.
        """
        if self._found:
            return b""
        data = self._tail + chunk
        index = data.find(self._marker)
        if index != -1:
            self._found = True
            self._tail = b""
            return data[:index]
        keep = self._partial_marker_length(data)
        if keep:
            self._tail = data[-keep:]
            return data[:-keep]
        self._tail = b""
        return data

    def flush(self) -> bytes:
        """Release held-back bytes, e.g. when the connection closes."""
        tail, self._tail = self._tail, b""
        return tail

    def _partial_marker_length(self, data: bytes) -> int:
        # Longest suffix of data that is a proper prefix of the marker.
        longest = min(len(self._marker) - 1, len(data))
        for size in range(longest, 0, -1):
            if self._marker.startswith(data[-size:]):
                return size
        return 0
