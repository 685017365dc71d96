"""qmdlsp: virtual documents for code and math embedded in markdown and Quarto files."""
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version('qmdlsp')
except PackageNotFoundError:
    # Running from a source checkout that was never installed
    __version__ = '0.0.0.dev0'
