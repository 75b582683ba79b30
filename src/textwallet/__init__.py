"""textwallet - drive a sponsored smart-contract wallet from text messages."""

__version__ = "0.1.0"
