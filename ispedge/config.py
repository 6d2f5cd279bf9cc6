"""Constants and configuration for ispedge."""

# Neutral trace destinations, one per operator (Cloudflare, Google, Quad9, OpenDNS)
DEFAULT_TARGETS = ["1.1.1.1", "8.8.8.8", "9.9.9.9", "208.67.222.222"]

# Traceroute settings: only the first few hops matter
HOP_LIMIT = 8
HOP_WAIT = 2  # seconds per hop
TRACE_TIMEOUT = 12.0  # wall-clock bound per strategy attempt
TCP_PORT = 443

# HTTP settings
HTTP_TIMEOUT = 8.0
ENRICH_TIMEOUT = 6.0

# Selection / enrichment bounds
MAX_CANDIDATES = 6
ENRICH_WORKERS = 6

# Diagnostics
RAW_PREVIEW_LINES = 4
RAW_PREVIEW_CHARS = 400

# Organisation names that mark a hop as cloud/CDN/hosting rather than an ISP
ORG_DENYLIST = (
    "google",
    "cloudflare",
    "amazon",
    "aws",
    "akamai",
    "microsoft",
    "azure",
    "oracle",
    "facebook",
    "meta",
    "edgecast",
    "vercel",
    "netlify",
    "fastly",
    "leaseweb",
    "digitalocean",
    "linode",
    "ovh",
    "choopa",
    "vultr",
    "hivelocity",
    "i3d",
    "hetzner",
    "gcore",
    "stackpath",
    "cdn",
)

# Remote trace services
IPTRACE_URL = "https://api.iptrace.dev/api/trace/{target}"
HACKERTARGET_MTR_URL = "https://api.hackertarget.com/mtr/?q={target}"

# IP -> ASN / geo lookup chain
GEO_APIS = [
    "https://ipapi.co/{ip}/json/",
    "http://ip-api.com/json/{ip}?fields=status,message,query,city,regionName,country,lat,lon,isp,org,as",
]

# ASN lookup DNS zones (Team Cymru)
CYMRU_ORIGIN_ZONE = "origin.asn.cymru.com"
CYMRU_ASN_ZONE = "asn.cymru.com"

# User agent for HTTP requests
USER_AGENT = "ispedge/0.1.0"

# Marker for absent values in human-oriented output
UNKNOWN = "unknown"
