"""Manifest model, profile resolution, dependency handling and formatting for SystemVerilog projects."""

__version__ = "0.4.0"