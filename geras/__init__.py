"""EMF document building, batching and delivery to CloudWatch Logs clients."""

__version__ = "0.1.0"

__all__ = [
    "safemap",
    "batchprocessor",
    "emf",
    "emfbatcher",
    "cwlclient",
    "extension",
    "cloudtrail",
    "filebatcher",
    "metrics",
]