"""Local stdio bridge between the editor and the gateway client."""

from moltstream.bridge.multiplexer import Bridge

__all__ = ["Bridge"]
