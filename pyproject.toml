[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "alacritty_chat"
version = "0.1.0"
description = "A desktop window pairing a chat assistant panel with a shell terminal pane"
requires-python = ">=3.10"
dependencies = []
keywords = ["terminal", "chat", "llm", "shell", "tkinter"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: X11 Applications",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Terminals :: Terminal Emulators/X Terminals",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
alacritty-chat = "alacritty_chat.app:main"

[tool.hatch.build.targets.wheel]
packages = ["alacritty_chat"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
