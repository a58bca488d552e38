"""FnO Scanner — daily technical scanner for the NSE F&O universe."""

__version__ = "0.1.0"
