from importlib import metadata

try:
    APILINE_VERSION = metadata.version("apiline")
except metadata.PackageNotFoundError:
    # Local run without installation
    APILINE_VERSION = "dev"
