"""Journey Autogen - turns journey step text into Playwright tests and repairs them."""

try:
    from journey_autogen._version import version as __version__
except ImportError:
    __version__ = "0.0.0.dev0"
