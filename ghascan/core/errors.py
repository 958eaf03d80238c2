"""
errors.py - Exception taxonomy for ghascan

None of these is fatal to a scan: resolution and parse failures are logged and
the affected node is skipped or treated as empty.
"""


class GhascanError(Exception):
    """Base class for ghascan errors"""


class ResolutionError(GhascanError):
    """Repository metadata or content could not be retrieved"""


class ParseError(GhascanError):
    """A workflow or action file is not valid YAML"""


class UnsupportedReferenceKind(GhascanError):
    """A ``uses:`` reference the graph cannot follow (e.g. ``docker://``)"""


class SizeLimitExceeded(GhascanError):
    """A repository or archive is larger than the configured ceiling"""
