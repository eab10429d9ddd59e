"""External metadata sources.

Providers are consulted to corroborate field values before scoring; any
provider failure is treated as "no data from this source".
"""

from catalogdq.sources.external import (
    DEFAULT_TIMEOUT,
    CorroborationClient,
    ExternalSourceError,
    HttpMetadataSource,
    MetadataSource,
)

__all__ = [
    "MetadataSource",
    "HttpMetadataSource",
    "CorroborationClient",
    "ExternalSourceError",
    "DEFAULT_TIMEOUT",
]
