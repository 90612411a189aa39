"""MSVC Code Analysis driven by the CMake file API."""

__version__ = "0.1.0"
