# alacritty_chat

A desktop window split in two. A chat panel sits on the left and a shell terminal pane sits on the right. The window is drawn with Tkinter, which ships with most Python builds, so the package needs nothing beyond the standard library.

## Installing

```
pip install .
```

## Running

```
alacritty-chat
```

The window opens at 1200×800. You can drag the divider between the two panes, but the chat panel stays at least 300 pixels wide.

### Terminal pane

The pane starts the shell named in `SHELL`. If `SHELL` is unset, it starts `/bin/bash`, or `cmd.exe` on Windows. If `/bin/bash` fails to start, it tries `/bin/sh` instead.

The shell gets the inherited environment with these values set:

- `LANG=ja_JP.UTF-8`
- `LC_ALL=ja_JP.UTF-8`
- `TERM=xterm-256color`

The shell runs on plain pipes, not a pseudo-terminal. Its standard output and standard error are decoded as UTF-8, with invalid bytes replaced, and fed into the screen buffer.

Click the pane to give it keyboard focus. Key presses then go to the shell:

- Printable characters are sent as UTF-8.
- Ctrl+letter is sent as the matching control code.
- The following keys are sent as the usual terminal byte sequences: Enter, Escape, Tab, Backspace, Delete, the arrow keys, Home, End, Page Up and Page Down.

### Chat panel

Type a message and press Enter or click **送信** to send it. Ctrl+Enter inserts a newline instead of sending.

The reply comes from a background thread. While you wait, the panel shows a waiting line and the send button is disabled. Fenced code blocks in a message are shown in a monospace font on a dark background. Errors are added to the history as system messages.

When `OPENAI_API_KEY` is set and not empty, an `OpenAIService` is used. It calls the chat-completions endpoint with the `gpt-3.5-turbo` model at temperature 0.7. Otherwise a `MockLLMService` echoes your latest message back after a short delay.

### WSL

Under WSL (`WSL_DISTRO_NAME` is set), a display server is required.

- If neither `DISPLAY` nor `WAYLAND_DISPLAY` is set, the command prints setup steps and exits.
- If the window still cannot be opened, it prints a checklist and a suggested `DISPLAY` value. That value is built from the `nameserver` entries in `/etc/resolv.conf`.

## Using the pieces directly

```python
from alacritty_chat.chat import ChatMessage, ChatPanel, MockLLMService, split_code_blocks
from alacritty_chat.terminal import ScreenBuffer, ShellProcess, key_to_bytes

screen = ScreenBuffer(80, 24)
screen.feed("hello\r\nworld")
print(screen.visible_lines()[:2])        # ['hello', 'world']

print(key_to_bytes("ArrowUp"))           # b'\x1b[A'
print(key_to_bytes("C", ctrl=True))      # b'\x03'

print(split_code_blocks("text\n```\ncode\n```"))
# [('text', 'text'), ('fence', '```'), ('code', 'code'), ('fence', '```')]

panel = ChatPanel(MockLLMService(delay=0))
panel.input_buffer = "hi"
panel.send_message()
reply = panel.wait_for_response(timeout=5)
print(reply.role)                        # assistant

with ShellProcess("/bin/sh") as shell:
    shell.write(b"echo hi\n")
# after close, shell.drain_output() returns everything the shell printed
```

### Modules

- `alacritty_chat.chat` contains:
  - `ChatMessage` and `ChatRole`
  - the `LLMService` interface, with `OpenAIService` and `MockLLMService`, which raise `LLMError` on failure
  - `service_from_environment`
  - `split_code_blocks`
  - `ChatPanel`, which holds the history, the input buffer and the outstanding request
- `alacritty_chat.terminal` contains:
  - `ScreenBuffer`
  - `key_to_bytes`
  - `default_shell` and `shell_environment`
  - `ShellProcess`, which moves the shell's input and output on background threads
  - `TerminalPane`, which ties a shell to a screen buffer sized in pixels
- `alacritty_chat.app` contains:
  - `AppState`, the Tkinter window
  - the WSL helpers `is_wsl`, `has_display`, `setup_help`, `failure_help` and `suggested_display`
  - `main`, the entry point of the `alacritty-chat` command

## Limitations

The terminal pane is not a full terminal emulator:

- The screen buffer handles only carriage return, line feed, tab and backspace. Other control characters are dropped. Printable characters are inserted at the cursor, so the rest of an escape sequence shows up as text.
- Colours and cursor-addressing sequences are not supported.
- Because the shell runs without a pseudo-terminal, programs that need a real TTY do not behave as they would in an ordinary terminal.
- Chat history is not saved between runs.

## Tests

```
pip install .[test]
pytest
```