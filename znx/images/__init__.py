"""Image slots: naming, update descriptors, fetchers and the repository."""

from znx.images.descriptor import MissingUpdateInfoError, read_update_locator
from znx.images.fetch import (
    FetchError,
    IncrementalFetch,
    LocalCopy,
    SourceFetcher,
    WholeFileDownload,
    classify_source,
    make_fetcher,
)
from znx.images.naming import ImageName, InvalidImageNameError
from znx.images.repository import (
    AlreadyDeployedError,
    DeployFailedError,
    ImageRepository,
    ImageSlot,
    NotDeployedError,
    RevertFailedError,
    SlotAccessError,
    UpdateFailedError,
)

__all__ = [
    # Naming
    "ImageName",
    "InvalidImageNameError",
    # Descriptor
    "MissingUpdateInfoError",
    "read_update_locator",
    # Fetchers
    "FetchError",
    "IncrementalFetch",
    "LocalCopy",
    "SourceFetcher",
    "WholeFileDownload",
    "classify_source",
    "make_fetcher",
    # Repository
    "AlreadyDeployedError",
    "DeployFailedError",
    "ImageRepository",
    "ImageSlot",
    "NotDeployedError",
    "RevertFailedError",
    "SlotAccessError",
    "UpdateFailedError",
]
