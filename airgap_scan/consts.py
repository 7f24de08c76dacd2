from pathlib import Path

# Trivy offline database layout (relative to the cache directory)
TRIVY_DEFAULT_CACHE_DIR = Path.home() / ".cache" / "trivy"
TRIVY_DB_DIRNAME = "db"
TRIVY_DB_FILES = ("trivy.db", "metadata.json")
TRIVY_JAVA_DB_DIRNAME = "java-db"

# Trivy scanner defaults
TRIVY_DEFAULT_SEVERITY = ""  # Empty => all severities
TRIVY_DEFAULT_PKG_TYPES = "os,library"
TRIVY_DEFAULT_SCANNERS = "vuln"
TRIVY_DEFAULT_TIMEOUT = "10m"  # Passed through to trivy --timeout
TRIVY_SBOM_SUBCOMMAND_MIN_VERSION = (0, 62, 0)  # 'trivy sbom' usable for image refs/archives

# Podman defaults
PODMAN_SAVE_TIMEOUT = "120s"
PODMAN_NONE_SENTINEL = "<none>"
PODMAN_SYSTEM_SOCKET = Path("/run/podman/podman.sock")
PODMAN_USER_SOCKET_TEMPLATE = "{runtime_dir}/podman/podman.sock"

# Run behaviour defaults
DEFAULT_ONLY_TAGGED = True
DEFAULT_FORCE_ARCHIVE = True  # Archive mode is the reliable default
DEFAULT_GENERATE_SBOM = True
DEFAULT_SBOM_FORMAT = "cyclonedx"
DEFAULT_ARCHIVE_RUN = False
DEFAULT_SCAN_CONCURRENCY = 1  # Strictly sequential; save + scan are memory/disk heavy
DEFAULT_DISAMBIGUATE_NAMES = False

# Run directory layout
REPORT_DIR_PREFIX = "trivy-reports-"
SBOM_DIR_PREFIX = "sboms-"
SBOM_FILE_SUFFIX = "-sbom.json"
RUN_METADATA_FILENAME = "run.meta.json"
RUN_ARCHIVE_PREFIX = "trivy-run-"
RUN_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S"
TEMP_ARCHIVE_DIR_PREFIX = "trivy-archive-"

# Error output truncation (stderr can be very large for failed scans)
MAX_ERROR_LENGTH = 1000

# Values accepted as booleans in environment overrides
TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
FALSE_VALUES = frozenset({"0", "false", "no", "off"})
