"""Shell process plumbing and a simple line-oriented screen buffer."""

from __future__ import annotations

import math
import os
import queue
import subprocess
import sys
import threading
import unicodedata
from collections.abc import Mapping
from typing import IO

DEFAULT_COLS = 80
DEFAULT_ROWS = 24
CELL_WIDTH = 8.0
CELL_HEIGHT = 16.0
TAB_WIDTH = 8
READ_CHUNK = 1024
FALLBACK_SHELL = "/bin/sh"
CLOSE_TIMEOUT = 5.0

# Sixteen-colour palette: black, red, green, yellow, blue, magenta, cyan,
# white, then the bright variants in the same order.
COLORS: tuple[tuple[int, int, int], ...] = (
    (0, 0, 0),
    (205, 0, 0),
    (0, 205, 0),
    (205, 205, 0),
    (0, 0, 238),
    (205, 0, 205),
    (0, 205, 205),
    (229, 229, 229),
    (127, 127, 127),
    (255, 0, 0),
    (0, 255, 0),
    (255, 255, 0),
    (92, 92, 255),
    (255, 0, 255),
    (0, 255, 255),
    (255, 255, 255),
)

_KEY_SEQUENCES: dict[str, bytes] = {
    "Enter": b"\r",
    "Escape": b"\x1b",
    "Tab": b"\t",
    "Backspace": b"\x7f",
    "Delete": b"\x1b[3~",
    "ArrowUp": b"\x1b[A",
    "ArrowDown": b"\x1b[B",
    "ArrowRight": b"\x1b[C",
    "ArrowLeft": b"\x1b[D",
    "Home": b"\x1b[H",
    "End": b"\x1b[F",
    "PageUp": b"\x1b[5~",
    "PageDown": b"\x1b[6~",
}

# Keys that are shown by a symbol rather than their name.
_KEY_SYMBOLS: dict[str, str] = {
    "ArrowUp": "⏶",
    "ArrowDown": "⏷",
    "ArrowLeft": "⏴",
    "ArrowRight": "⏵",
}


class ScreenBuffer:
    """Lines of text with a cursor, fed by raw shell output.

    Only carriage return, line feed, tab and backspace are interpreted;
    other control characters are dropped. Printable characters are
    inserted at the cursor.
    """

    def __init__(self, cols: int = DEFAULT_COLS, rows: int = DEFAULT_ROWS) -> None:
        if cols <= 0 or rows <= 0:
            raise ValueError("terminal size must be positive")
        self.cols = cols
        self.rows = rows
        self.lines: list[str] = [""] * rows
        self.cursor_col = 0
        self.cursor_row = 0

    @property
    def cursor(self) -> tuple[int, int]:
        """The cursor as ``(column, row)``."""
        return self.cursor_col, self.cursor_row

    @property
    def cursor_visible(self) -> bool:
        return self.cursor_row < self.rows

    def resize(self, cols: int, rows: int) -> bool:
        """Adopt a new size; sizes with a zero dimension are ignored."""
        if (cols, rows) == (self.cols, self.rows) or cols <= 0 or rows <= 0:
            return False
        self.cols, self.rows = cols, rows
        if len(self.lines) < rows:
            self.lines.extend([""] * (rows - len(self.lines)))
        return True

    def feed(self, text: str) -> None:
        for ch in text:
            if ch == "\r":
                self.cursor_col = 0
            elif ch == "\n":
                self._line_feed()
            elif ch == "\t":
                self._tab()
            elif ch == "\b":
                if self.cursor_col > 0:
                    self.cursor_col -= 1
            elif unicodedata.category(ch) != "Cc":
                self._put(ch)

    def visible_lines(self) -> list[str]:
        return self.lines[: self.rows]

    def _ensure_row(self) -> None:
        while self.cursor_row >= len(self.lines):
            self.lines.append("")

    def _line_feed(self) -> None:
        self.cursor_row += 1
        if self.cursor_row >= len(self.lines):
            self.lines.append("")
            if len(self.lines) > self.rows * 3:
                excess = len(self.lines) - self.rows * 2
                del self.lines[:excess]
                self.cursor_row -= excess

    def _tab(self) -> None:
        for _ in range(TAB_WIDTH):
            if self.cursor_col >= self.cols:
                continue
            self._ensure_row()
            line = self.lines[self.cursor_row]
            if len(line) <= self.cursor_col:
                line += " " * (self.cursor_col + 1 - len(line))
                self.lines[self.cursor_row] = line
            self.cursor_col += 1

    def _put(self, ch: str) -> None:
        self._ensure_row()
        line = self.lines[self.cursor_row].ljust(self.cursor_col)
        col = self.cursor_col
        self.lines[self.cursor_row] = line[:col] + ch + line[col:]
        self.cursor_col += 1
        if self.cursor_col >= self.cols:
            self.cursor_col = 0
            self.cursor_row += 1
            self._ensure_row()


def key_to_bytes(key: str, ctrl: bool = False) -> bytes:
    """Bytes a key press sends to the shell; empty for unmapped keys."""
    if ctrl:
        label = _KEY_SYMBOLS.get(key, key)
        first = label[:1]
        if first.isascii() and first.isalpha():
            return bytes([ord(first.upper()) - ord("A") + 1])
    return _KEY_SEQUENCES.get(key, b"")


def default_shell(
    environ: Mapping[str, str] | None = None, platform: str | None = None
) -> str:
    """The user's shell from SHELL, else the platform's usual one."""
    env = os.environ if environ is None else environ
    plat = sys.platform if platform is None else platform
    shell = env.get("SHELL")
    if shell is not None:
        return shell
    return "cmd.exe" if plat.startswith("win") else "/bin/bash"


def shell_environment(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Environment for the shell: inherited, with a UTF-8 Japanese locale."""
    env = dict(os.environ if environ is None else environ)
    env["PATH"] = env.get("PATH", "")
    env["HOME"] = env.get("HOME", "")
    env.update(
        {
            "LANG": "ja_JP.UTF-8",
            "LC_ALL": "ja_JP.UTF-8",
            "TERM": "xterm-256color",
        }
    )
    return env


class ShellProcess:
    """A shell on pipes, with background threads moving its input and output."""

    def __init__(self, shell: str | None = None) -> None:
        self.shell = shell if shell is not None else default_shell()
        self._output: queue.Queue[str] = queue.Queue()
        self._input: queue.Queue[bytes | None] = queue.Queue()
        self._process: subprocess.Popen | None = None
        self._writer: threading.Thread | None = None
        self._readers: list[threading.Thread] = []
        self._closed = False

    def __enter__(self) -> "ShellProcess":
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def start(self) -> bool:
        """Launch the shell; return whether a process is now attached."""
        if self._process is not None:
            raise RuntimeError("shell already started")
        process = self._spawn()
        if process is None:
            return False
        self._process = process
        self._writer = threading.Thread(
            target=self._write_loop, args=(process.stdin,), daemon=True
        )
        self._writer.start()
        for stream, label in ((process.stdout, "stdout"), (process.stderr, "stderr")):
            reader = threading.Thread(
                target=self._read_loop, args=(stream, label), daemon=True
            )
            reader.start()
            self._readers.append(reader)
        return True

    def _popen(self, args: list[str], env: dict[str, str] | None) -> subprocess.Popen:
        return subprocess.Popen(
            args,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=env,
        )

    def _spawn(self) -> subprocess.Popen | None:
        try:
            process = self._popen([self.shell], shell_environment())
        except OSError as exc:
            self._output.put(
                f"シェルの起動に失敗しました: {exc}\nパス: {self.shell}\n"
            )
            if self.shell != "/bin/bash":
                return None
            try:
                process = self._popen([FALLBACK_SHELL], None)
            except OSError as fallback_exc:
                self._output.put(f"すべてのシェルが失敗しました: {fallback_exc}\n")
                return None
            self._output.put(f"フォールバック: {FALLBACK_SHELL}を使用します\n")
            return process
        self._output.put(f"ターミナルを起動しました: {self.shell}\n")
        return process

    def _write_loop(self, stdin: IO[bytes]) -> None:
        try:
            while (data := self._input.get()) is not None:
                stdin.write(data)
                stdin.flush()
        except (OSError, ValueError):
            pass
        finally:
            try:
                stdin.close()
            except OSError:
                pass

    def _read_loop(self, stream: IO[bytes], label: str) -> None:
        try:
            while chunk := stream.read1(READ_CHUNK):
                self._output.put(chunk.decode("utf-8", errors="replace"))
        except (OSError, ValueError) as exc:
            self._output.put(f"{label}読み取りエラー: {exc}\n")
        finally:
            stream.close()

    def write(self, data: bytes) -> None:
        """Queue bytes for the shell's standard input."""
        payload = bytes(data)
        if self._process is None or self._closed:
            return
        self._input.put(payload)

    def drain_output(self) -> list[str]:
        """Everything the shell produced since the last call, without blocking."""
        chunks: list[str] = []
        while True:
            try:
                chunks.append(self._output.get_nowait())
            except queue.Empty:
                return chunks

    def close(self) -> None:
        """Close the shell's input, wait for it to exit and collect its output."""
        if self._process is None or self._closed:
            return
        self._closed = True
        self._input.put(None)
        if self._writer is not None:
            self._writer.join(CLOSE_TIMEOUT)
        try:
            self._process.wait(CLOSE_TIMEOUT)
        except subprocess.TimeoutExpired:
            self._process.kill()
            self._process.wait()
        for reader in self._readers:
            reader.join(CLOSE_TIMEOUT)


class TerminalPane:
    """A shell wired to a screen buffer, sized in pixels."""

    def __init__(self, shell: str | None = None) -> None:
        self.screen = ScreenBuffer(DEFAULT_COLS, DEFAULT_ROWS)
        self.cell_width = CELL_WIDTH
        self.cell_height = CELL_HEIGHT
        self.focused = False
        self.process = ShellProcess(shell)
        self.process.start()

    def __enter__(self) -> "TerminalPane":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def resize_to_pixels(self, width: float, height: float) -> bool:
        """Fit the grid to an area in pixels; return whether the size changed."""
        cols = math.floor(width / self.cell_width)
        rows = math.floor(height / self.cell_height)
        return self.screen.resize(cols, rows)

    def process_output(self) -> None:
        for chunk in self.process.drain_output():
            self.screen.feed(chunk)

    def handle_key_press(self, text: str) -> None:
        self.process.write(text.encode("utf-8"))

    def send_key(self, key: str, ctrl: bool = False) -> None:
        data = key_to_bytes(key, ctrl)
        if data:
            self.process.write(data)

    def close(self) -> None:
        self.process.close()