"""
pixel_mcp - raster color engine and MCP tools for pixel-art workflows.
"""

__version__ = "0.1.0"
