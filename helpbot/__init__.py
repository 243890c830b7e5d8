"""
helpbot - A Matrix bot that answers `!h <tag>` with a link into the Neovim
user manual.
"""

__version__ = "0.1.0"
