# Root package initializer for audiovisual_emotion
# Ensures Python treats this directory as a package for absolute imports.

__all__ = [
    "api",
    "cli",
    "core",
    "inference",
    "preprocessing",
    "utils",
]
