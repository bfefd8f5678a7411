"""mategate: command-dispatch gateway for coarse-grained domain facades."""

__version__ = "0.1.0"
