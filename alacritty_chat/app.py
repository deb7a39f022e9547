"""Application window: chat panel on the left, terminal on the right."""

from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Mapping

from alacritty_chat.chat import ChatMessage, ChatPanel, split_code_blocks
from alacritty_chat.terminal import COLORS, TerminalPane

WINDOW_TITLE = "Alacritty Chat"
WINDOW_SIZE = (1200, 800)
CHAT_MIN_WIDTH = 300
REFRESH_MS = 50
RESOLV_CONF = "/etc/resolv.conf"

_TK_KEYS: dict[str, str] = {
    "Return": "Enter",
    "KP_Enter": "Enter",
    "Escape": "Escape",
    "Tab": "Tab",
    "BackSpace": "Backspace",
    "Delete": "Delete",
    "Up": "ArrowUp",
    "Down": "ArrowDown",
    "Right": "ArrowRight",
    "Left": "ArrowLeft",
    "Home": "Home",
    "End": "End",
    "Prior": "PageUp",
    "Next": "PageDown",
}
_CONTROL_MASK = 0x4


def _hex(rgb: tuple[int, int, int]) -> str:
    return "#{:02x}{:02x}{:02x}".format(*rgb)


def is_wsl(environ: Mapping[str, str] | None = None) -> bool:
    """Whether we run inside a WSL distribution."""
    env = os.environ if environ is None else environ
    return "WSL_DISTRO_NAME" in env


def has_display(environ: Mapping[str, str] | None = None) -> bool:
    """Whether an X11 or Wayland display server is configured."""
    env = os.environ if environ is None else environ
    return "DISPLAY" in env or "WAYLAND_DISPLAY" in env


def setup_help() -> str:
    """Instructions for configuring an X server under WSL2."""
    return "\n".join(
        [
            "WSL2環境で実行するには、X Serverの設定が必要です。",
            "以下の手順で設定してください：",
            "1. Windows側でVcXsrvなどのX Serverを起動",
            "2. WSL2側で次のコマンドを実行: export DISPLAY=$(cat /etc/resolv.conf"
            " | grep nameserver | awk '{print $2}'):0",
            "3. 再度アプリケーションを起動",
        ]
    )


def failure_help() -> str:
    """Checklist shown when the window could not be opened under WSL2."""
    return "\n".join(
        [
            "WSL2環境では、以下の設定を確認してください：",
            "1. Windows側でX Serverが実行中か",
            "2. WSL2側で環境変数DISPLAYが正しく設定されているか",
            "3. Firewallで接続がブロックされていないか",
        ]
    )


def suggested_display(resolv_conf: str | None = None) -> str:
    """DISPLAY value built from the nameserver entries of resolv.conf text.

    With no text given, the system's resolv.conf is read; an unreadable
    file counts as empty.
    """
    if resolv_conf is None:
        try:
            with open(RESOLV_CONF, encoding="utf-8", errors="replace") as handle:
                resolv_conf = handle.read()
        except OSError:
            resolv_conf = ""
    addresses = []
    for line in resolv_conf.splitlines():
        if "nameserver" not in line:
            continue
        fields = line.split()
        addresses.append(fields[1] if len(fields) > 1 else "")
    return "\n".join(addresses).strip() + ":0.0"


class AppState:
    """The main window's widgets bound to a chat panel and a terminal pane."""

    def __init__(
        self,
        root,
        terminal: TerminalPane | None = None,
        chat: ChatPanel | None = None,
    ) -> None:
        import tkinter as tk
        from tkinter import font as tkfont

        self.root = root
        self.terminal = terminal if terminal is not None else TerminalPane()
        self.chat = chat if chat is not None else ChatPanel()
        self._closed = False
        self._shown_state: tuple[int, bool] | None = None

        panes = tk.PanedWindow(root, orient=tk.HORIZONTAL, sashwidth=4)
        panes.pack(fill=tk.BOTH, expand=True)

        chat_frame = tk.Frame(panes)
        panes.add(chat_frame, minsize=CHAT_MIN_WIDTH, width=CHAT_MIN_WIDTH)
        tk.Label(chat_frame, text="チャットパネル", font=("TkHeadingFont", 14, "bold")).pack(
            fill=tk.X, pady=(4, 10)
        )

        history_frame = tk.Frame(chat_frame)
        history_frame.pack(fill=tk.BOTH, expand=True)
        scrollbar = tk.Scrollbar(history_frame)
        scrollbar.pack(side=tk.RIGHT, fill=tk.Y)
        self.history_view = tk.Text(
            history_frame, wrap=tk.WORD, state=tk.DISABLED, yscrollcommand=scrollbar.set
        )
        self.history_view.pack(side=tk.LEFT, fill=tk.BOTH, expand=True)
        scrollbar.config(command=self.history_view.yview)

        mono = tkfont.nametofont("TkFixedFont")
        self.history_view.tag_configure("user", foreground="#add8e6", font=("TkDefaultFont", 10, "bold"))
        self.history_view.tag_configure("assistant", foreground="#90ee90", font=("TkDefaultFont", 10, "bold"))
        self.history_view.tag_configure("system", foreground="#a0a0a0", font=("TkDefaultFont", 10, "italic"))
        self.history_view.tag_configure("mark", font=("TkDefaultFont", 8))
        self.history_view.tag_configure("fence", foreground="#a0a0a0", font=mono)
        self.history_view.tag_configure("code", background="#282828", foreground="#e5e5e5", font=mono)
        self.history_view.tag_configure("waiting", font=("TkDefaultFont", 10, "italic"))

        input_frame = tk.Frame(chat_frame)
        input_frame.pack(fill=tk.X, pady=(10, 4))
        self.input_view = tk.Text(input_frame, height=3, wrap=tk.WORD)
        self.input_view.pack(side=tk.LEFT, fill=tk.X, expand=True)
        self.input_view.bind("<Return>", self._on_input_return)
        self.send_button = tk.Button(input_frame, text="送信", command=self._submit)
        self.send_button.pack(side=tk.RIGHT, padx=(4, 0))

        self.canvas = tk.Canvas(panes, background=_hex(COLORS[0]), highlightthickness=0, takefocus=1)
        panes.add(self.canvas)
        self.canvas.bind("<Button-1>", self._on_terminal_click)
        self.canvas.bind("<Key>", self._on_terminal_key)
        self._terminal_font = tkfont.Font(
            family=mono.actual("family"), size=-int(self.terminal.cell_height * 0.8)
        )

        root.protocol("WM_DELETE_WINDOW", self.close)
        self.refresh()

    def refresh(self) -> None:
        """Pull pending output and replies, redraw, and schedule the next pass."""
        if self._closed:
            return
        self.terminal.resize_to_pixels(self.canvas.winfo_width(), self.canvas.winfo_height())
        self.terminal.process_output()
        self._draw_terminal()
        self.chat.poll_response()
        self._draw_chat()
        self.root.after(REFRESH_MS, self.refresh)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.terminal.close()
        self.root.destroy()

    def _draw_terminal(self) -> None:
        screen = self.terminal.screen
        width = self.terminal.cell_width
        height = self.terminal.cell_height
        self.canvas.delete("all")
        for row, line in enumerate(screen.visible_lines()):
            if line:
                self.canvas.create_text(
                    0, row * height, anchor="nw", text=line,
                    fill=_hex(COLORS[7]), font=self._terminal_font,
                )
        if screen.cursor_visible:
            col, row = screen.cursor
            x, y = col * width, row * height
            self.canvas.create_rectangle(
                x, y, x + width, y + height, fill="#c8c8c8", outline="", stipple="gray50"
            )

    def _draw_chat(self) -> None:
        state = (len(self.chat.history), self.chat.awaiting_response)
        if state == self._shown_state:
            return
        self._shown_state = state
        view = self.history_view
        view.config(state="normal")
        view.delete("1.0", "end")
        for message in self.chat.history:
            self._insert_message(message)
        if self.chat.awaiting_response:
            view.insert("end", "応答を待っています...\n", "waiting")
        view.config(state="disabled")
        view.see("end")
        self.send_button.config(state="disabled" if self.chat.awaiting_response else "normal")

    def _insert_message(self, message: ChatMessage) -> None:
        view = self.history_view
        if message.is_user():
            view.insert("end", "あなた", "user")
            view.insert("end", "  ✉", "mark")
        elif message.is_assistant():
            view.insert("end", "AI", "assistant")
        else:
            view.insert("end", "システム", "system")
        view.insert("end", "\n")
        for kind, line in split_code_blocks(message.content):
            view.insert("end", line + "\n", () if kind == "text" else (kind,))
        view.insert("end", "─" * 30 + "\n", "fence")

    def _submit(self) -> None:
        self.chat.input_buffer = self.input_view.get("1.0", "end-1c")
        if self.chat.send_message():
            self.input_view.delete("1.0", "end")
            self._draw_chat()

    def _on_input_return(self, event) -> str | None:
        if event.state & _CONTROL_MASK:
            return None
        self._submit()
        return "break"

    def _on_terminal_click(self, _event) -> None:
        self.terminal.focused = True
        self.canvas.focus_set()

    def _on_terminal_key(self, event) -> str | None:
        if not self.terminal.focused:
            return None
        ctrl = bool(event.state & _CONTROL_MASK)
        keysym = event.keysym
        if ctrl and len(keysym) == 1 and keysym.isascii() and keysym.isalpha():
            self.terminal.send_key(keysym.upper(), ctrl=True)
            return "break"
        name = _TK_KEYS.get(keysym)
        if name is not None:
            self.terminal.send_key(name, ctrl=ctrl)
            return "break"
        if event.char and event.char.isprintable():
            self.terminal.handle_key_press(event.char)
            return "break"
        return None


def main(argv: list[str] | None = None) -> int:
    """Open the window; return the process exit status."""
    parser = argparse.ArgumentParser(
        prog="alacritty-chat", description="Terminal with an attached chat panel."
    )
    parser.parse_args(argv)

    wsl_mode = is_wsl()
    if wsl_mode and not has_display():
        print(setup_help())
        return 0

    try:
        import tkinter as tk

        root = tk.Tk()
    except (ImportError, RuntimeError, Exception) as exc:  # TclError has no import-free name
        print(f"アプリケーションの起動に失敗しました: {exc}", file=sys.stderr)
        if wsl_mode:
            print("\n" + failure_help())
            print(f"\n推奨設定: export DISPLAY={suggested_display()}")
        return 1

    root.title(WINDOW_TITLE)
    root.geometry(f"{WINDOW_SIZE[0]}x{WINDOW_SIZE[1]}")
    AppState(root)
    root.mainloop()
    return 0


if __name__ == "__main__":
    sys.exit(main())