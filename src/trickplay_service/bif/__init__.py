"""Binary preview index format."""

from .codec import BifHeader, Frame, decode, encode, validate

__all__ = ["BifHeader", "Frame", "decode", "encode", "validate"]
