"""SwitchBot device drivers."""

from .plug_mini import PlugMini

__all__ = ["PlugMini"]
