# Upstream resolution: geolocation and network reputation
from .race import Contender, RaceWinner, race_with_deadline
from .network import is_local_address, is_valid_ip, normalize_ip, parse_ip, ip_version
from .location import (
    LocationProvider,
    IpApiProvider,
    IpapiCoProvider,
    IpWhoisProvider,
    IpinfoProvider,
    LocationResolver,
    default_location_providers,
)
from .threat import (
    ThreatStrategy,
    IPHubStrategy,
    IPQualityScoreStrategy,
    HeuristicStrategy,
    ThreatResolver,
    default_threat_strategies,
)

__all__ = [
    "Contender",
    "RaceWinner",
    "race_with_deadline",
    "is_local_address",
    "is_valid_ip",
    "normalize_ip",
    "parse_ip",
    "ip_version",
    "LocationProvider",
    "IpApiProvider",
    "IpapiCoProvider",
    "IpWhoisProvider",
    "IpinfoProvider",
    "LocationResolver",
    "default_location_providers",
    "ThreatStrategy",
    "IPHubStrategy",
    "IPQualityScoreStrategy",
    "HeuristicStrategy",
    "ThreatResolver",
    "default_threat_strategies",
]
