import pytest

from alacritty_chat.app import (
    failure_help,
    has_display,
    is_wsl,
    main,
    setup_help,
    suggested_display,
)


@pytest.mark.parametrize(
    "environ, expected",
    [
        ({"WSL_DISTRO_NAME": "Ubuntu"}, True),
        ({"WSL_DISTRO_NAME": ""}, True),
        ({}, False),
        ({"DISPLAY": ":0"}, False),
    ],
)
def test_is_wsl(environ, expected):
    assert is_wsl(environ) is expected


@pytest.mark.parametrize(
    "environ, expected",
    [
        ({"DISPLAY": ":0"}, True),
        ({"WAYLAND_DISPLAY": "wayland-0"}, True),
        ({"DISPLAY": ":0", "WAYLAND_DISPLAY": "wayland-0"}, True),
        ({}, False),
        ({"WSL_DISTRO_NAME": "Ubuntu"}, False),
    ],
)
def test_has_display(environ, expected):
    assert has_display(environ) is expected


def test_setup_help_lines():
    lines = setup_help().splitlines()
    assert len(lines) == 5
    assert lines[0] == "WSL2環境で実行するには、X Serverの設定が必要です。"
    assert lines[-1] == "3. 再度アプリケーションを起動"


def test_setup_help_command_has_single_braces():
    text = setup_help()
    assert "awk '{print $2}'):0" in text
    assert "{{" not in text


def test_failure_help_lines():
    lines = failure_help().splitlines()
    assert len(lines) == 4
    assert lines[0] == "WSL2環境では、以下の設定を確認してください："
    assert lines[3] == "3. Firewallで接続がブロックされていないか"


def test_suggested_display_single_nameserver():
    assert suggested_display("nameserver 172.20.0.1\n") == "172.20.0.1:0.0"


def test_suggested_display_ignores_other_lines():
    text = "# generated\nsearch localdomain\nnameserver 10.0.0.2\n"
    assert suggested_display(text) == "10.0.0.2:0.0"


def test_suggested_display_multiple_nameservers():
    text = "nameserver 10.0.0.2\nnameserver 10.0.0.3\n"
    assert suggested_display(text) == "10.0.0.2\n10.0.0.3:0.0"


def test_suggested_display_without_nameserver():
    assert suggested_display("search localdomain\n") == ":0.0"


def test_suggested_display_always_ends_with_screen_suffix():
    assert suggested_display("").endswith(":0.0")


def test_main_in_wsl_without_display_prints_setup_help(monkeypatch, capsys):
    monkeypatch.setenv("WSL_DISTRO_NAME", "Ubuntu")
    monkeypatch.delenv("DISPLAY", raising=False)
    monkeypatch.delenv("WAYLAND_DISPLAY", raising=False)
    status = main([])
    captured = capsys.readouterr()
    assert status == 0
    assert captured.out == setup_help() + "\n"
    assert captured.err == ""


def test_main_rejects_unknown_option(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["--no-such-option"])
    assert excinfo.value.code == 2