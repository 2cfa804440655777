"""Decode oracles: raster in, decoded text (or None) out."""

from .oracle import DecodeOracle, OpenCVQRDecoder

__all__ = ["DecodeOracle", "OpenCVQRDecoder"]
