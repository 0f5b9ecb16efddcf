from importlib import metadata as _metadata


try:
    __version__ = _metadata.version(__package__)
except _metadata.PackageNotFoundError:
    # Running from a source checkout that was not installed.
    __version__ = "unknown"
