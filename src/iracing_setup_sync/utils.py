"""Shared utility functions for iRacing setup sync."""

UNSAFE_PATH_CHARS = '/\\:*?"<>|'

_TRANSLATION = str.maketrans({char: "_" for char in UNSAFE_PATH_CHARS})


def sanitize_filename(filename: str) -> tuple[str, bool]:
    """Sanitize a name so it can be used as a single path segment.

    Replaces every character that is unsafe in Windows or POSIX filenames
    (``/ \\ : * ? " < > |``) with an underscore. Spaces are kept because the
    iRacing setups folder uses display names verbatim.

    Args:
        filename: The name to sanitize

    Returns:
        Tuple of (sanitized name, whether the name was changed)
    """
    sanitized = filename.translate(_TRANSLATION)
    return sanitized, sanitized != filename
