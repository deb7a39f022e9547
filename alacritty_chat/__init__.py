"""A chat assistant panel next to a shell terminal pane in one Tkinter window."""

__version__ = "0.1.0"
__all__ = ["__version__"]