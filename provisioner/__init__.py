"""
Toolchain Provisioner - resolve, download and install language toolchains.
"""

__version__ = "0.1.0"
