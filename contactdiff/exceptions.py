"""
Exception taxonomy for contactdiff

Chromosome-fatal errors abort one chromosome's pipeline; recoverable errors
mark a single pool/direction as unmodeled or are logged and clamped.
"""


class ContactDiffError(Exception):
    """Base class for all contactdiff errors"""


class ConfigurationError(ContactDiffError):
    """Configuration values are missing or out of range"""


class InvalidContactMatrix(ContactDiffError):
    """Contact matrix triples violate the upper-triangle sparse layout"""


class ShapeMismatch(ContactDiffError):
    """Two contact matrices do not address the same bin indexing"""


class PoolingDegenerate(ContactDiffError):
    """No diagonal range is available to pool"""


class InsufficientSamples(ContactDiffError):
    """A pool has fewer paired samples than the configured minimum"""


class NumericalNonConvergence(ContactDiffError):
    """Weighted likelihood maximization failed to converge"""


class InvalidProbability(ContactDiffError):
    """
    A computed probability fell outside [0, 1]

    Never raised: invalid probabilities are clamped and the class name tags
    the warning that reports them.
    """


FATAL_PER_CHROMOSOME = (ShapeMismatch, PoolingDegenerate)
